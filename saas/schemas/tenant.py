from pydantic import BaseModel, ConfigDict, Field


class TenantSetupRequest(BaseModel):
    capabilities: list[str] | None = Field(None, description="Schema creators to apply; defaults to all.")

    # the tenant always comes from the request host
    model_config = ConfigDict(extra="forbid")


class TenantSetupResponse(BaseModel):
    tenant: str
    capabilities: list[str]
    permissions_seeded: list[str]


class TenantInfoResponse(BaseModel):
    tenant: str
    provisioned: bool
    capabilities: list[str]
