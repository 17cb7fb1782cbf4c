from typing import NewType

Address = NewType('Address', str)
TransactionHash = NewType('TransactionHash', str)
