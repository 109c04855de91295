import os
from urllib.parse import quote, urljoin
from dotenv import load_dotenv
from .utils import open_session
from typing import Any, Optional, Mapping


class YieldSourceClient:
    """REST client for the relay that executes calls on lending venues.

    Amounts travel as decimal strings because they routinely exceed 64 bits.
    """

    def __init__(self, base_fqdn: Optional[str] = None, timeout: int = 45):
        load_dotenv()
        fqdn = base_fqdn or os.getenv("YIELD_SOURCE_BASE_FQDN")
        if not fqdn:
            raise ValueError("Environment variable 'YIELD_SOURCE_BASE_FQDN' is not set")

        self.base_url = f"https://{fqdn}".rstrip("/")
        self.session = open_session()
        self.timeout = timeout

    # -------- headers --------
    @property
    def headers(self) -> Mapping[str, str]:
        return {"Accept": "application/json", "Content-Type": "application/json"}

    # -------- core request --------
    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> Any:
        url = urljoin(self.base_url + "/", path.lstrip("/"))
        r = self.session.request(
            method=method.upper(),
            url=url,
            headers=self.headers,
            params=params,
            json=json,
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json() if r.content else None

    @staticmethod
    def _venue_path(address: str, action: str) -> str:
        return f"/api/v1/venues/{quote(address, safe='')}/{action}"

    # -------- API callers --------
    def transfer(
        self,
        address: str,
        token_id: str,
        amount: int,
        *,
        attached_deposit: int = 0,
        gas: int = 0,
    ) -> dict:
        """Forward ``amount`` of ``token_id`` from the pool into the venue."""
        return self._request(
            "POST",
            self._venue_path(address, "transfer"),
            json={
                "token_id": token_id,
                "amount": str(amount),
                "attached_deposit": str(attached_deposit),
                "gas": str(gas),
            },
        )

    def claim(
        self,
        address: str,
        account_id: str,
        token_id: str,
        amount: int,
        draw_id: int,
        pick: int,
        *,
        attached_deposit: int = 0,
        gas: int = 0,
    ) -> dict:
        """Pay a prize of ``amount`` to ``account_id`` out of the venue's yield."""
        return self._request(
            "POST",
            self._venue_path(address, "claim"),
            json={
                "account_id": account_id,
                "token_id": token_id,
                "amount": str(amount),
                "draw_id": draw_id,
                "pick": str(pick),
                "attached_deposit": str(attached_deposit),
                "gas": str(gas),
            },
        )

    def withdraw(
        self,
        address: str,
        account_id: str,
        token_id: str,
        amount: int,
        *,
        attached_deposit: int = 0,
        gas: int = 0,
    ) -> dict:
        """Return ``amount`` of principal from the venue to ``account_id``."""
        return self._request(
            "POST",
            self._venue_path(address, "withdraw"),
            json={
                "account_id": account_id,
                "token_id": token_id,
                "amount": str(amount),
                "attached_deposit": str(attached_deposit),
                "gas": str(gas),
            },
        )

    def get_reward(self, address: str, *, gas: int = 0) -> dict:
        """Return the yield accrued by the pool, as ``{"amount": "<decimal>"}``."""
        return self._request(
            "GET",
            self._venue_path(address, "reward"),
            params={"gas": str(gas)},
        )

    def get_account(self, address: str) -> dict:
        """Return the pool's supplied assets as seen by the venue."""
        return self._request("GET", self._venue_path(address, "account"))
