import http.client
import json
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from railway_adapter.images import select_services
from railway_adapter.redaction import redact_text, redact_url
from railway_adapter.replicas import resolve_replica_count


RAILWAY_API_URL = "https://backboard.railway.app/graphql/v2"

ENVIRONMENT_SERVICES_QUERY = """
query Environment($environmentId: String!, $after: String) {
  environment(id: $environmentId) {
    id
    name
    projectId
    serviceInstances(after: $after) {
      edges {
        node {
          id
          serviceId
          serviceName
          latestDeployment {
            meta
          }
          source {
            image
            repo
          }
        }
      }
      pageInfo {
        endCursor
        hasNextPage
      }
    }
  }
}
"""

SERVICE_INSTANCE_UPDATE_MUTATION = """
mutation ServiceInstanceUpdate($environmentId: String!, $serviceId: String!, $input: ServiceInstanceUpdateInput!) {
  serviceInstanceUpdate(environmentId: $environmentId, serviceId: $serviceId, input: $input)
}
"""

SERVICE_INSTANCE_DEPLOY_MUTATION = """
mutation ServiceInstanceDeploy($serviceId: String!, $environmentId: String!, $latestCommit: Boolean) {
  serviceInstanceDeploy(serviceId: $serviceId, environmentId: $environmentId, latestCommit: $latestCommit)
}
"""


class RailwayError(RuntimeError):
    pass


class ServiceUpdateError(RailwayError):
    """A matched service failed to update or redeploy.

    ``updated_services`` lists the services finished before the failure; those
    updates stay applied.
    """

    def __init__(self, service_name: str, cause: str, updated_services: Sequence[str]) -> None:
        super().__init__(f"failed to update service {service_name}: {cause}")
        self.service_name = service_name
        self.cause = cause
        self.updated_services = list(updated_services)


@dataclass(frozen=True)
class RailwayClientConfig:
    token: str
    api_url: str = RAILWAY_API_URL
    registry_username: str = ""
    registry_password: str = ""
    request_timeout_seconds: Optional[float] = None

    @property
    def registry_credentials_configured(self) -> bool:
        return bool(self.registry_username and self.registry_password)


@dataclass(frozen=True)
class ServiceInstance:
    id: str
    name: str
    image: str
    num_replicas: int = 1


class RailwayAdapter:
    def __init__(
        self,
        config: RailwayClientConfig,
        request_id_provider: Optional[Callable[[], str]] = None,
    ) -> None:
        if not config.token:
            raise ValueError("Railway API token is required")
        self.config = config
        self.request_id_provider = request_id_provider
        self._logger = logging.getLogger("imageupdater.railway")
        self._obs_logger = logging.getLogger("imageupdater.obs")

    def list_services(self, environment_id: str) -> List[ServiceInstance]:
        services: List[ServiceInstance] = []
        after: Optional[str] = None
        while True:
            data = self._graphql(
                ENVIRONMENT_SERVICES_QUERY,
                {"environmentId": environment_id, "after": after},
                operation="list_services",
            )
            environment = data.get("environment")
            if not isinstance(environment, dict):
                raise RailwayError(f"failed to parse services: environment {environment_id} not found")
            connection = environment.get("serviceInstances")
            if not isinstance(connection, dict) or not isinstance(connection.get("edges"), list):
                raise RailwayError("failed to parse services: missing serviceInstances edges")
            for edge in connection["edges"]:
                service = self._service_from_edge(edge)
                if service is not None:
                    services.append(service)
            page_info = connection.get("pageInfo") or {}
            cursor = page_info.get("endCursor")
            if not page_info.get("hasNextPage") or not cursor or cursor == after:
                break
            after = cursor
        self._logger.info(
            "railway.services environment_id=%s environment=%s project_id=%s image_services=%d",
            environment_id,
            environment.get("name"),
            environment.get("projectId"),
            len(services),
        )
        return services

    def update_service_image(self, service_id: str, environment_id: str, image: str, num_replicas: int) -> None:
        service_input: Dict[str, object] = {
            "source": {"image": image},
            "numReplicas": num_replicas,
        }
        if self.config.registry_credentials_configured:
            service_input["registryCredentials"] = {
                "username": self.config.registry_username,
                "password": self.config.registry_password,
            }
        try:
            self._graphql(
                SERVICE_INSTANCE_UPDATE_MUTATION,
                {"environmentId": environment_id, "serviceId": service_id, "input": service_input},
                operation="update_service_instance",
            )
        except RailwayError as exc:
            raise RailwayError(f"failed to update service instance: {exc}") from exc

    def deploy_service(self, service_id: str, environment_id: str) -> None:
        try:
            self._graphql(
                SERVICE_INSTANCE_DEPLOY_MUTATION,
                {"serviceId": service_id, "environmentId": environment_id, "latestCommit": False},
                operation="deploy_service_instance",
            )
        except RailwayError as exc:
            raise RailwayError(f"failed to deploy service instance: {exc}") from exc

    def update_services(self, environment_id: str, image_prefixes: Sequence[str], new_version: str) -> List[str]:
        """Retag and redeploy every image service matching one of the prefixes.

        Services are handled one at a time in listing order. The first failure
        stops the run and raises ServiceUpdateError with the names already
        updated.
        """
        try:
            services = self.list_services(environment_id)
        except RailwayError as exc:
            raise RailwayError(f"failed to get services: {exc}") from exc

        updated: List[str] = []
        for service, prefix, new_image in select_services(services, image_prefixes, new_version):
            self._logger.info(
                "railway.update service=%s prefix=%s from=%s to=%s replicas=%d",
                service.name,
                prefix,
                service.image,
                new_image,
                service.num_replicas,
            )
            try:
                self.update_service_image(service.id, environment_id, new_image, service.num_replicas)
                self.deploy_service(service.id, environment_id)
            except RailwayError as exc:
                raise ServiceUpdateError(service.name, str(exc), updated) from exc
            updated.append(service.name)
        return updated

    def _service_from_edge(self, edge: object) -> Optional[ServiceInstance]:
        node = edge.get("node") if isinstance(edge, dict) else None
        if not isinstance(node, dict):
            raise RailwayError("failed to parse services: malformed serviceInstances edge")
        source = node.get("source") or {}
        image = source.get("image") if isinstance(source, dict) else None
        if image is not None and not isinstance(image, str):
            raise RailwayError(f"failed to parse services: image source for {node.get('serviceName')} is not a string")
        if not image:
            # Plugins and repo-backed services have no image to retag.
            return None
        latest = node.get("latestDeployment")
        meta = latest.get("meta") if isinstance(latest, dict) else None
        name = node.get("serviceName") or ""
        return ServiceInstance(
            id=str(node.get("serviceId") or ""),
            name=name,
            image=image,
            num_replicas=resolve_replica_count(name, meta),
        )

    def _graphql(self, query: str, variables: dict, operation: str) -> dict:
        payload, _ = self._request_json({"query": query, "variables": variables}, operation=operation)
        if not isinstance(payload, dict):
            raise RailwayError("failed to unmarshal response: expected a JSON object")
        errors = payload.get("errors")
        if errors:
            first = errors[0] if isinstance(errors, list) else errors
            message = first.get("message") if isinstance(first, dict) else str(first)
            raise RailwayError(redact_text(f"GraphQL error: {message}"))
        data = payload.get("data")
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise RailwayError("failed to unmarshal response: data is not an object")
        return data

    def _request_json(self, body: dict, operation: str = "request") -> tuple:
        url = self.config.api_url
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.token}",
        }
        request_id = self.request_id_provider() if self.request_id_provider else ""
        if request_id:
            headers["X-Request-Id"] = request_id
        data = json.dumps(body).encode("utf-8")
        self._logger.debug("railway.graphql operation=%s request=%s", operation, redact_text(data.decode("utf-8")))
        request = Request(url, data=data, headers=headers, method="POST")
        start = time.monotonic()
        self._log_railway_event("railway_call_started", request_id, operation, url)
        try:
            if self.config.request_timeout_seconds is None:
                response_ctx = urlopen(request)
            else:
                response_ctx = urlopen(request, timeout=self.config.request_timeout_seconds)
            with response_ctx as response:
                status_code = response.status
                raw = response.read().decode("utf-8")
        except HTTPError as exc:
            latency_ms = (time.monotonic() - start) * 1000
            detail = exc.read().decode("utf-8", errors="replace") if exc.fp else ""
            snippet = self._safe_snippet(detail)
            message = f"API returned status {exc.code}: {snippet}" if snippet else f"API returned status {exc.code}"
            redacted_message = redact_text(message)
            self._log_railway_event(
                "railway_call_failed",
                request_id,
                operation,
                url,
                outcome="FAILED",
                duration_ms=round(latency_ms, 1),
                error=redacted_message,
                status_code=exc.code,
            )
            raise RailwayError(redacted_message) from exc
        except URLError as exc:
            latency_ms = (time.monotonic() - start) * 1000
            self._log_railway_event(
                "railway_call_failed",
                request_id,
                operation,
                url,
                outcome="FAILED",
                duration_ms=round(latency_ms, 1),
                error=str(exc.reason),
            )
            raise RailwayError(redact_text(f"failed to execute request: {exc.reason}")) from exc
        except (UnicodeDecodeError, http.client.HTTPException) as exc:
            # Truncated or non-UTF-8 bodies on an otherwise successful call.
            self._log_railway_event(
                "railway_call_failed",
                request_id,
                operation,
                url,
                outcome="FAILED",
                duration_ms=round((time.monotonic() - start) * 1000, 1),
                error=str(exc),
            )
            raise RailwayError(redact_text(f"failed to read response: {exc}")) from exc
        except OSError as exc:
            # Socket timeouts surface as plain OSError subclasses.
            self._log_railway_event(
                "railway_call_failed",
                request_id,
                operation,
                url,
                outcome="FAILED",
                duration_ms=round((time.monotonic() - start) * 1000, 1),
                error=str(exc),
            )
            raise RailwayError(redact_text(f"failed to execute request: {exc}")) from exc

        latency_ms = (time.monotonic() - start) * 1000
        self._logger.debug(
            "railway.graphql operation=%s status=%s response=%s",
            operation,
            status_code,
            redact_text(self._safe_snippet(raw, limit=2000)),
        )
        if status_code != 200:
            message = redact_text(f"API returned status {status_code}: {self._safe_snippet(raw)}")
            self._log_railway_event(
                "railway_call_failed",
                request_id,
                operation,
                url,
                outcome="FAILED",
                duration_ms=round(latency_ms, 1),
                error=message,
                status_code=status_code,
            )
            raise RailwayError(message)
        self._log_railway_event(
            "railway_call_succeeded",
            request_id,
            operation,
            url,
            outcome="SUCCESS",
            duration_ms=round(latency_ms, 1),
            status_code=status_code,
        )
        try:
            return json.loads(raw), status_code
        except json.JSONDecodeError as exc:
            raise RailwayError(f"failed to unmarshal response: {exc}") from exc

    def _log_railway_event(
        self,
        event: str,
        request_id: str,
        operation: str,
        url: str,
        outcome: Optional[str] = None,
        duration_ms: Optional[float] = None,
        error: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        fields = {
            "event": event,
            "request_id": request_id or "",
            "operation": operation,
            "target": redact_url(url),
        }
        if outcome:
            fields["outcome"] = outcome
        if duration_ms is not None:
            fields["duration_ms"] = duration_ms
        if status_code is not None:
            fields["status_code"] = status_code
        if error:
            fields["error"] = redact_text(error)
        parts = [f"{key}={fields[key]}" for key in sorted(fields.keys())]
        self._obs_logger.info(" ".join(parts))

    @staticmethod
    def _safe_snippet(value: str, limit: int = 240) -> str:
        if not value:
            return ""
        text = value.replace("\n", " ").replace("\r", " ")
        if len(text) <= limit:
            return text
        return text[:limit].rstrip() + "..."
