import os

from eth_utils import is_address, to_checksum_address
from pydantic import BaseModel, ConfigDict, field_validator

REGISTRY_ADDRESS_ENV = "HARBOUR_REGISTRY_ADDRESS"

# Placeholder used when no deployment is configured.
DEFAULT_REGISTRY_ADDRESS = "0x0000000000000000000000000000000000000000"

SESSION_TYPE = "harbour:session:v1"


class HarbourSettings(BaseModel):
    """Deployment specific values that scope sign-in signatures."""

    registry_address: str = DEFAULT_REGISTRY_ADDRESS
    domain_name: str = "Harbour"
    domain_version: str = "1"
    statement: str = "Log into Harbour to access encrypted transaction data"

    model_config = ConfigDict(frozen=True)

    @field_validator("registry_address")
    @classmethod
    def checksum_registry(cls, value: str) -> str:
        if not is_address(value):
            raise ValueError(f"Invalid registry address {value}")
        return to_checksum_address(value)


def load_settings(**overrides: str) -> HarbourSettings:
    if "registry_address" not in overrides and REGISTRY_ADDRESS_ENV in os.environ:
        overrides["registry_address"] = os.environ[REGISTRY_ADDRESS_ENV]
    return HarbourSettings(**overrides)
