# src/poaledger/runtime/ecosystem.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from poaledger.ledger.constants import (
    ACT_RATE,
    COMPANY_BBK_LOCK_SECONDS,
    REG_BBK,
    REG_COMPANY_ACCOUNT,
    REG_EXCHANGE_RATES,
    REG_FEE_MANAGER,
    REG_POA_MANAGER,
    REG_POA_TOKEN_MASTER,
    REG_WHITELIST,
)
from poaledger.runtime.access_fee_share import AccessFeeShare
from poaledger.runtime.bbk_token import BbkToken
from poaledger.runtime.chain import Chain
from poaledger.runtime.chain_config import ChainConfig, load_chain_config
from poaledger.runtime.collaborators import ContractRegistry, ExchangeRates, Whitelist
from poaledger.runtime.company_account import CompanyAccount
from poaledger.runtime.event_logging import log_event
from poaledger.runtime.poa_manager import PoaManager
from poaledger.runtime.sqlite_db import SqliteChainStore, SqliteDB

log = logging.getLogger("poaledger.boot")

# Initial supply of the governance token, in base units.
DEFAULT_BBK_SUPPLY = 500_000_000 * 10**18


@dataclass
class Ecosystem:
    """Addresses of the contracts a token needs around it."""

    owner: str
    registry: str
    whitelist: str
    exchange_rates: str
    bbk: str
    fee_manager: str
    company_account: str
    token_master: str
    token_master_v2: str
    poa_manager: str

    def to_json(self) -> Dict[str, str]:
        return dict(self.__dict__)


def bootstrap_ecosystem(
    chain: Chain,
    *,
    owner: str,
    rates: Optional[Mapping[str, int]] = None,
    bbk_supply: int = DEFAULT_BBK_SUPPLY,
    bonus_address: Optional[str] = None,
    company_release_time: Optional[int] = None,
    act_rate: int = ACT_RATE,
) -> Ecosystem:
    """Deploy and wire registry, whitelist, rates, BBK, fee share, company
    account, masters and manager.

    Deployment is genesis surface; registry wiring and pointing the BBK sale
    at the company account go through ordinary calls from `owner` so they
    land in the event log. The BBK sale itself is left open and paused.
    """
    registry = chain.deploy(ContractRegistry.name, ContractRegistry.init_storage(owner))
    whitelist = chain.deploy(Whitelist.name, Whitelist.init_storage(owner))
    exchange_rates = chain.deploy(ExchangeRates.name, ExchangeRates.init_storage(owner, dict(rates or {})))
    bbk = chain.new_address(BbkToken.name)
    chain.deploy(
        BbkToken.name,
        BbkToken.init_storage(
            owner, address=bbk, bonus_address=bonus_address or chain.new_address("bonus"), initial_supply=bbk_supply
        ),
        address=bbk,
    )
    fee_manager = chain.deploy(AccessFeeShare.name, AccessFeeShare.init_storage(owner, bbk=bbk, act_rate=act_rate))
    release = chain.now + COMPANY_BBK_LOCK_SECONDS if company_release_time is None else int(company_release_time)
    company_account = chain.deploy(CompanyAccount.name, CompanyAccount.init_storage(owner, release_time=release))
    token_master = chain.deploy("PoaTokenMaster")
    token_master_v2 = chain.deploy("PoaTokenMasterV2")
    poa_manager = chain.deploy(PoaManager.name, PoaManager.init_storage(owner))
    chain.registry_address = registry

    for name, address in (
        (REG_POA_MANAGER, poa_manager),
        (REG_POA_TOKEN_MASTER, token_master),
        (REG_FEE_MANAGER, fee_manager),
        (REG_WHITELIST, whitelist),
        (REG_EXCHANGE_RATES, exchange_rates),
        (REG_BBK, bbk),
        (REG_COMPANY_ACCOUNT, company_account),
    ):
        chain.execute(
            registry,
            {"method": "UPDATE_CONTRACT_ADDRESS", "sender": owner, "payload": {"name": name, "address": address}},
        )
    chain.execute(bbk, {"method": "CHANGE_COMPANY_ACCOUNT", "sender": owner, "payload": {"address": company_account}})

    eco = Ecosystem(
        owner=owner,
        registry=registry,
        whitelist=whitelist,
        exchange_rates=exchange_rates,
        bbk=bbk,
        fee_manager=fee_manager,
        company_account=company_account,
        token_master=token_master,
        token_master_v2=token_master_v2,
        poa_manager=poa_manager,
    )
    log_event(log, "ecosystem_bootstrapped", chain_id=chain.chain_id, **eco.to_json())
    return eco


def ecosystem_from_chain(chain: Chain) -> Optional[Ecosystem]:
    """Recover ecosystem addresses from a restored chain's registry."""
    if not chain.registry_address:
        return None
    names = chain.view(chain.registry_address, "addresses")
    v2 = [a for a, c in chain.contracts.items() if c.get("code") == "PoaTokenMasterV2"]
    return Ecosystem(
        owner=str(chain.view(chain.registry_address, "owner")),
        registry=chain.registry_address,
        whitelist=names.get(REG_WHITELIST, ""),
        exchange_rates=names.get(REG_EXCHANGE_RATES, ""),
        bbk=names.get(REG_BBK, ""),
        fee_manager=names.get(REG_FEE_MANAGER, ""),
        company_account=names.get(REG_COMPANY_ACCOUNT, ""),
        token_master=names.get(REG_POA_TOKEN_MASTER, ""),
        token_master_v2=sorted(v2)[0] if v2 else "",
        poa_manager=names.get(REG_POA_MANAGER, ""),
    )


def chain_params(cfg: ChainConfig) -> Dict[str, int]:
    return {
        "fee_rate_permille": int(cfg.fee_rate_permille),
        "activation_fee_tolerance_permille": int(cfg.activation_fee_tolerance_permille),
    }


def build_chain(cfg: Optional[ChainConfig] = None) -> Chain:
    """Build the node's chain from config.

    With a db_path, an existing snapshot is restored (running migrations);
    otherwise a fresh ecosystem is bootstrapped and persisted. An empty
    db_path gives an in-memory chain.
    """
    c = cfg or load_chain_config()
    store: Optional[SqliteChainStore] = None
    if c.db_path:
        store = SqliteChainStore(db=SqliteDB(path=c.db_path))
        restored = Chain.from_store(store)
        if restored is not None:
            log_event(log, "chain_restored", chain_id=restored.chain_id, contracts=len(restored.contracts))
            return restored

    chain = Chain(chain_id=c.chain_id, params=chain_params(c), store=store)
    bootstrap_ecosystem(chain, owner=c.genesis_owner, rates=c.genesis_rates, act_rate=c.act_rate)
    chain.persist()
    return chain


__all__ = [
    "DEFAULT_BBK_SUPPLY",
    "Ecosystem",
    "bootstrap_ecosystem",
    "build_chain",
    "chain_params",
    "ecosystem_from_chain",
]
