from typing import Any, NewType

Address = NewType('Address', str)

# address -> {"balance"?, "nonce"?, "code"?, "state"?, "stateDiff"?}
StateOverrideSet = dict[str, dict[str, Any]]
