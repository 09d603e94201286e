# ledger/services/endpoints.py
from dataclasses import dataclass


@dataclass
class Endpoints:
    # site origin, also sent as origin/referer
    base_url: str
    user_agent: str

    # REST paths
    order_history: str = "/v1/layout/order_history"
    order_count: str = "/v1/order_count"
    auth_key: str = "/v2/accounts/auth_key/"

    @property
    def referer(self) -> str:
        return f"{self.base_url}/account/orders"

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"


def make_endpoints_from_cfg(cfg: dict) -> Endpoints:
    try:
        site = cfg["blinkit"]
        base_url = str(site["base_url"]).rstrip("/")
        paths = site.get("paths") or {}
        user_agent = site.get("user_agent") or ""
    except KeyError as e:
        raise ValueError(f"Invalid cfg missing key: {e}") from e

    defaults = Endpoints(base_url=base_url, user_agent=user_agent)
    return Endpoints(
        base_url=base_url,
        user_agent=user_agent,
        order_history=paths.get("order_history", defaults.order_history),
        order_count=paths.get("order_count", defaults.order_count),
        auth_key=paths.get("auth_key", defaults.auth_key),
    )
