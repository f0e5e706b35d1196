# multibaas_client.py
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

CHAIN = "ethereum"
CONTRACT_ADDRESS = "sprite_write"  # address alias registered in MultiBaas
CONTRACT_LABEL = "sprite_write"
MINT_METHOD = "safeMint"


class MultiBaasError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MissingTransactionHash(MultiBaasError):
    """The upstream call succeeded but its result carried no transaction hash."""


@dataclass
class ContractCallPayload:
    args: List[Any]
    from_address: str
    sign_and_submit: bool = True

    def to_json(self) -> Dict[str, Any]:
        return {"args": list(self.args), "signAndSubmit": self.sign_and_submit, "from": self.from_address}


class MultiBaasClient:
    """Thin client for the MultiBaas REST API.

    The bearer token and base URL are fixed at construction and reused by
    every call through a single requests.Session.
    """

    def __init__(self, endpoint: str, api_key: str, timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.endpoint = endpoint.rstrip("/")
        self.base_url = f"{self.endpoint}/api/v0"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        })

    @classmethod
    def from_config(cls, cfg, session=None):
        return cls(cfg.endpoint, cfg.api_key, timeout=cfg.timeout, session=session)

    def close(self):
        self.session.close()

    def method_url(self, chain: str, address: str, contract: str, method: str) -> str:
        return f"{self.base_url}/chains/{chain}/addresses/{address}/contracts/{contract}/methods/{method}"

    def call_contract_function(self, chain: str, address: str, contract: str, method: str, payload: ContractCallPayload) -> Dict[str, Any]:
        url = self.method_url(chain, address, contract, method)
        logger.debug("POST %s", url)
        try:
            r = self.session.post(url, json=payload.to_json(), timeout=self.timeout)
        except requests.RequestException as e:
            raise MultiBaasError(f"request to {url} failed: {e}") from e

        try:
            body = r.json()
        except ValueError:
            body = None

        if not r.ok:
            message = body.get("message") if isinstance(body, dict) else None
            raise MultiBaasError(f"MultiBaas returned {r.status_code}: {message or r.text}", status_code=r.status_code)
        if not isinstance(body, dict):
            raise MultiBaasError(f"MultiBaas returned a non-JSON body: {r.text[:200]}", status_code=r.status_code)

        result = body.get("result")
        if not isinstance(result, dict):
            raise MultiBaasError("MultiBaas response has no result object", status_code=r.status_code)
        return result

    def call_mint_function(self, payload: ContractCallPayload) -> str:
        """Call safeMint on the sprite_write contract and return the transaction hash."""
        result = self.call_contract_function(CHAIN, CONTRACT_ADDRESS, CONTRACT_LABEL, MINT_METHOD, payload)
        tx = result.get("tx") or {}
        tx_hash = tx.get("hash") if isinstance(tx, dict) else None
        if not tx_hash:
            raise MissingTransactionHash(f"no transaction hash in result (kind={result.get('kind')!r})")
        return tx_hash
