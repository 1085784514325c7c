from .vault import Vault, DepositResult, WithdrawResult, AccruedFees
from .params import RiskParameters
from .shares import ShareLedger
from .errors import VaultError
