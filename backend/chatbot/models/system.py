from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    dependencies: dict[str, str]


class ModelInfo(BaseModel):
    id: str
    provider: str
    model_name: str
    configured: bool
    default: bool
