import os
import sys
from pathlib import Path
from typing import Callable, Optional


HERE = Path(__file__).resolve().parent
RAILWAY_ADAPTER_DIR = HERE.parent / "railway-adapter"
if RAILWAY_ADAPTER_DIR.is_dir() and str(RAILWAY_ADAPTER_DIR) not in sys.path:
    sys.path.append(str(RAILWAY_ADAPTER_DIR))

from railway_adapter.adapter import RAILWAY_API_URL, RailwayClientConfig


class Settings:
    def __init__(self) -> None:
        self.ssm_prefix = os.getenv("IMAGE_UPDATER_SSM_PREFIX", "")
        self.railway_api_token = self._resolve_secret(
            self._get("railway/api_token", "RAILWAY_API_TOKEN", "", str)
        )
        self.registry_username = self._get("railway/registry_user", "RAILWAY_DOCKER_REGISTRY_USER", "", str)
        self.registry_password = self._resolve_secret(
            self._get("railway/registry_token", "RAILWAY_DOCKER_REGISTRY_TOKEN", "", str)
        )
        self.railway_api_url = self._get("railway/api_url", "RAILWAY_API_URL", RAILWAY_API_URL, str) or RAILWAY_API_URL
        self.request_timeout_seconds = self._positive_float(os.getenv("RAILWAY_REQUEST_TIMEOUT_SECONDS", ""))
        self.port = self._port(os.getenv("PORT", ""))
        self.log_level = (os.getenv("IMAGE_UPDATER_LOG_LEVEL", "INFO") or "INFO").strip().upper()
        self.lambda_enabled = self._as_bool(os.getenv("IMAGE_UPDATER_LAMBDA", "0"))

    @property
    def registry_credentials_configured(self) -> bool:
        return bool(self.registry_username and self.registry_password)

    def railway_client_config(self) -> RailwayClientConfig:
        if not self.railway_api_token:
            raise RuntimeError("RAILWAY_API_TOKEN environment variable is required")
        return RailwayClientConfig(
            token=self.railway_api_token,
            api_url=self.railway_api_url,
            registry_username=self.registry_username or "",
            registry_password=self.registry_password or "",
            request_timeout_seconds=self.request_timeout_seconds,
        )

    def _as_bool(self, value: object) -> bool:
        text = str(value or "").strip().lower()
        return text in {"1", "true", "yes", "on"}

    def _port(self, value: str) -> int:
        try:
            port = int(value)
        except ValueError:
            return 8080
        if 0 < port < 65536:
            return port
        return 8080

    def _positive_float(self, value: str) -> Optional[float]:
        try:
            parsed = float(value)
        except ValueError:
            return None
        if 0 < parsed < float("inf"):
            return parsed
        return None

    def _get(self, ssm_key: str, env_key: str, default, parser: Callable) -> Optional[object]:
        if env_key in os.environ:
            try:
                return parser(os.environ[env_key])
            except ValueError:
                return default
        if self.ssm_prefix:
            value = self._read_ssm(f"{self.ssm_prefix}/{ssm_key}")
            if value is not None:
                try:
                    return parser(value)
                except ValueError:
                    return default
        return default

    def _read_ssm(self, name: str) -> Optional[str]:
        try:
            import boto3
            from botocore.exceptions import BotoCoreError, ClientError
        except ImportError:
            return None
        try:
            client = boto3.client("ssm")
            response = client.get_parameter(Name=name, WithDecryption=True)
            return response.get("Parameter", {}).get("Value")
        except (BotoCoreError, ClientError):
            return None

    def _resolve_secret(self, value: Optional[str]) -> Optional[str]:
        if not isinstance(value, str):
            return value
        if not value.startswith("arn:aws:secretsmanager:"):
            return value
        try:
            import boto3
            from botocore.exceptions import BotoCoreError, ClientError
        except ImportError:
            return value
        try:
            client = boto3.client("secretsmanager")
            response = client.get_secret_value(SecretId=value)
            return response.get("SecretString", value)
        except (BotoCoreError, ClientError):
            return value


SETTINGS = Settings()
