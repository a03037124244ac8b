import os
import json
from functools import cache

import aa_gas_estimator


@cache
def load_bytecode(file_name: str, contracts_dir: str | None = None) -> str:
    if contracts_dir is None:
        package_directory = os.path.dirname(
                os.path.abspath(aa_gas_estimator.__file__))
        contracts_dir = os.path.join(package_directory, "contracts")
    bytecode_file = os.path.join(contracts_dir, file_name)

    with open(bytecode_file) as byte_code_file:
        data = json.load(byte_code_file)
    byte_code = data["bytecode"]

    return byte_code
