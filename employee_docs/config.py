import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

from .exceptions import ConfigurationError

load_dotenv()

CREDENTIAL_VARS = {
    "tenant_id": "AZURE_TENANT_ID",
    "client_id": "AZURE_CLIENT_ID",
    "client_secret": "AZURE_CLIENT_SECRET",
}


class Settings(BaseModel):
    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    drive_id: str = "me"
    root_folder_id: str = "root"
    ledger_file_name: str = "Employee-Data.xlsx"
    cors_origins: List[str] = ["*"]
    host: str = "0.0.0.0"
    port: int = 5000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        origins_env = os.getenv("CORS_ORIGINS", "*")
        origins = [o.strip() for o in origins_env.split(",") if o.strip()] or ["*"]
        return cls(
            tenant_id=(os.getenv("AZURE_TENANT_ID") or "").strip() or None,
            client_id=(os.getenv("AZURE_CLIENT_ID") or "").strip() or None,
            client_secret=(os.getenv("AZURE_CLIENT_SECRET") or "").strip() or None,
            drive_id=os.getenv("ONEDRIVE_DRIVE_ID") or "me",
            root_folder_id=os.getenv("ONEDRIVE_ROOT_FOLDER_ID") or "root",
            ledger_file_name=os.getenv("LEDGER_FILE_NAME") or "Employee-Data.xlsx",
            cors_origins=origins,
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "5000")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    def missing_credentials(self) -> List[str]:
        return [env for field, env in CREDENTIAL_VARS.items() if not getattr(self, field)]

    def require_credentials(self) -> None:
        missing = self.missing_credentials()
        if missing:
            raise ConfigurationError(
                "Upload service is not configured",
                details=[f"{name} must be set" for name in missing],
            )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
