# src/poaledger/runtime/contracts.py
from __future__ import annotations

from typing import Any, Dict

from poaledger.runtime.access_fee_share import AccessFeeShare
from poaledger.runtime.bbk_token import BbkToken
from poaledger.runtime.collaborators import ContractRegistry, ExchangeRates, Whitelist
from poaledger.runtime.company_account import CompanyAccount
from poaledger.runtime.poa_manager import PoaManager
from poaledger.runtime.poa_token import PoaTokenMaster, PoaTokenMasterV2
from poaledger.runtime.proxy import PoaProxy

# Code name -> implementation. Contract records reference code by name so
# snapshots stay plain JSON.
CODES: Dict[str, Any] = {
    c.name: c
    for c in (
        ContractRegistry(),
        Whitelist(),
        ExchangeRates(),
        BbkToken(),
        AccessFeeShare(),
        CompanyAccount(),
        PoaManager(),
        PoaProxy(),
        PoaTokenMaster(),
        PoaTokenMasterV2(),
    )
}
