from pathlib import Path
from typing import Dict, List, Optional

from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address

from zkevm_deployment.constants import UPGRADES_MANIFEST_DIR
from zkevm_deployment.utils import DeploymentConfigError, _load_json, _write_json

TRANSPARENT = "transparent"


def manifest_filepath(network_name: str, directory: Path = UPGRADES_MANIFEST_DIR) -> Path:
    return Path(directory) / f"{network_name}.json"


def check_no_previous_manifest(filepath: Path) -> None:
    """
    A manifest left by a previous deployment would mix its proxies into this one's
    upgrade tracking; the operator has to remove it by hand.
    """
    if Path(filepath).exists():
        raise DeploymentConfigError(
            "There's upgradability information from previous deployments, it's mandatory "
            f"to erase them before start a new one, path: {filepath}"
        )


class UpgradesManifest:
    """Which proxies exist on a network, their implementations, and their shared admin."""

    def __init__(
        self,
        admin: Optional[ChecksumAddress] = None,
        proxies: Optional[List[Dict[str, str]]] = None,
    ):
        self.admin = admin
        self.proxies = list(proxies or [])

    @classmethod
    def read(cls, filepath: Path) -> "UpgradesManifest":
        filepath = Path(filepath)
        if not filepath.exists():
            raise DeploymentConfigError(f"No upgrades manifest found at {filepath}")
        data = _load_json(filepath)
        admin = data.get("admin", {}).get("address")
        return cls(
            admin=to_checksum_address(admin) if admin else None,
            proxies=data.get("proxies", []),
        )

    def set_admin(self, address: str) -> None:
        self.admin = to_checksum_address(address)

    def add_proxy(self, address: str, implementation: str, kind: str = TRANSPARENT) -> None:
        address = to_checksum_address(address)
        self.proxies = [p for p in self.proxies if p["address"] != address]
        self.proxies.append(
            {
                "address": address,
                "implementation": to_checksum_address(implementation),
                "kind": kind,
            }
        )

    def get_proxy(self, address: str) -> Optional[Dict[str, str]]:
        address = to_checksum_address(address)
        for proxy in self.proxies:
            if proxy["address"] == address:
                return proxy
        return None

    def write(self, filepath: Path) -> Path:
        data = {"admin": {"address": self.admin}, "proxies": self.proxies}
        return _write_json(data, filepath)
