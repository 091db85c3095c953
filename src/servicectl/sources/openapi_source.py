"""Dynamic command source backed by an OpenAPI 3.x document.

The document is fetched over HTTP (trying the usual well-known locations) or
read from a local file, cached until ``refresh()``, and mapped into commands by
``servicectl.mappers.openapi_mapper``. Each generated handler turns parsed
options back into an HTTP request and sends it through the context's
``HttpTransport``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, NamedTuple, Optional
from urllib.parse import quote

import yaml

from ..errors import ConfigError, DynamicSourceError, TransportError, ValidationFailedError
from ..mappers.openapi_mapper import AuthRequirements, extract_options, get_auth_requirements, map_spec
from ..models import POSITIONAL_KEY, Command, CommandContext, CommandHandler, CommandResult, OptionDefinition
from ..transport import DEFAULT_TIMEOUT, HttpTransport, HttpxTransport
from .base import SourceKind

logger = logging.getLogger(__name__)

WELL_KNOWN_SPEC_PATHS = ("", "/openapi.json", "/api-docs", "/swagger.json", "/v3/api-docs")


class HttpRequestParts(NamedTuple):
    path: str
    params: Dict[str, Any]
    headers: Dict[str, str]
    body: Any


def candidate_spec_urls(base_url: str) -> List[str]:
    base = base_url.rstrip("/")
    return [f"{base}{suffix}" for suffix in WELL_KNOWN_SPEC_PATHS]


def parse_spec_document(raw: Any) -> Optional[Dict[str, Any]]:
    """Parse a JSON or YAML payload; None unless it has ``openapi`` and ``paths``."""
    doc: Any = raw
    if isinstance(raw, (str, bytes)):
        try:
            doc = yaml.safe_load(raw)
        except yaml.YAMLError:
            try:
                doc = json.loads(raw)
            except ValueError:
                return None

    if isinstance(doc, Mapping) and doc.get("openapi") and doc.get("paths"):
        return dict(doc)
    return None


def load_spec_file(path: str) -> Dict[str, Any]:
    spec_path = Path(path).expanduser()
    try:
        content = spec_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise DynamicSourceError(f"Cannot read OpenAPI document {spec_path}", cause=exc) from exc

    spec = parse_spec_document(content)
    if spec is None:
        raise DynamicSourceError(f"{spec_path} is not an OpenAPI document")
    return spec


def _option_value(option: OptionDefinition, args: Mapping[str, Any]) -> Any:
    for key in (option.key, option.name):
        if key in args:
            return args[key]
    if option.short and option.short.lstrip("-") in args:
        return args[option.short.lstrip("-")]
    return option.default


def build_http_request(path: str, options: List[OptionDefinition], args: Mapping[str, Any]) -> HttpRequestParts:
    """Route option values to path, query, header, cookie and body locations.

    Raises:
        ValidationFailedError: If a path parameter has no value
    """
    params: Dict[str, Any] = {}
    headers: Dict[str, str] = {}
    cookies: List[str] = []
    body: Dict[str, Any] = {}
    raw_body: Any = None

    for option in options:
        value = _option_value(option, args)
        location = option.location or "query"

        if location == "path":
            if value is None:
                raise ValidationFailedError(f"Missing required path parameter '{option.name}'")
            path = path.replace(f"{{{option.name}}}", quote(str(value), safe=""))
            continue

        if value is None:
            continue

        if location == "query":
            params[option.name] = value
        elif location == "header":
            headers[option.name] = str(value)
        elif location == "cookie":
            cookies.append(f"{option.name}={value}")
        elif option.name == "body" and len([o for o in options if o.location == "body"]) == 1:
            raw_body = value
        else:
            body[option.name] = value

    if cookies:
        headers["Cookie"] = "; ".join(cookies)

    return HttpRequestParts(path=path, params=params, headers=headers, body=body or raw_body)


def auth_headers(auth: AuthRequirements, token: Optional[str]) -> Dict[str, str]:
    if not token:
        return {}
    if auth.type == "apiKey" and auth.location == "header" and auth.name:
        return {auth.name: token}
    if auth.type in ("bearer", "oauth2"):
        return {"Authorization": f"Bearer {token}"}
    return {}


class OpenAPICommandSource:
    """Commands generated from a service's OpenAPI document."""

    kind = SourceKind.OPENAPI

    def __init__(
        self,
        namespace: str,
        url: Optional[str] = None,
        spec_url: Optional[str] = None,
        spec_path: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        program_name: str = "servicectl",
        transport: Optional[HttpTransport] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        if not (url or spec_url or spec_path):
            raise ConfigError(f"Service '{namespace}' needs a url, openapi_url or openapi_path")

        self.namespace = namespace
        self.url = url
        self.spec_url = spec_url
        self.spec_path = spec_path
        self.headers = dict(headers or {})
        self.program_name = program_name
        self._transport = transport or HttpxTransport(timeout=timeout)
        self._spec: Optional[Dict[str, Any]] = None

    async def load_spec(self) -> Dict[str, Any]:
        if self._spec is None:
            if self.spec_path:
                self._spec = load_spec_file(self.spec_path)
            else:
                self._spec = await self._fetch_spec()
        return self._spec

    async def _fetch_spec(self) -> Dict[str, Any]:
        endpoints = [self.spec_url] if self.spec_url else candidate_spec_urls(self.url or "")
        request_headers = {"Accept": "application/json, application/yaml", **self.headers}

        for endpoint in endpoints:
            try:
                response = await self._transport.request("GET", endpoint, headers=request_headers)
            except TransportError as exc:
                logger.debug(f"OpenAPI probe {endpoint} failed: {exc}")
                continue

            if response.status_code != 200:
                continue

            spec = parse_spec_document(response.data if response.data is not None else response.text)
            if spec is not None:
                logger.debug(f"Loaded OpenAPI document for {self.namespace} from {endpoint}")
                return spec

        raise DynamicSourceError(
            f"No OpenAPI document found for '{self.namespace}'",
            payload={"tried": endpoints},
        )

    async def discover(self) -> List[Command]:
        spec = await self.load_spec()
        commands = map_spec(spec, self.namespace, self._make_handler, program_name=self.program_name)
        logger.debug(f"Mapped {len(commands)} operations for {self.namespace}")
        return commands

    async def refresh(self) -> None:
        self._spec = None

    def base_url(self, context: Optional[CommandContext]) -> str:
        if context is not None and self.namespace in context.services:
            return context.services[self.namespace].url.rstrip("/")
        if self.url:
            return self.url.rstrip("/")
        for server in (self._spec or {}).get("servers") or []:
            server_url = server.get("url", "")
            if server_url.startswith(("http://", "https://")):
                return server_url.rstrip("/")
        raise ConfigError(f"No base URL known for service '{self.namespace}'")

    def _make_handler(self, path: str, method: str, operation: Mapping[str, Any]) -> CommandHandler:
        options = extract_options(operation)
        auth = get_auth_requirements(self._spec or {})

        async def handler(args: Dict[str, Any], context: CommandContext) -> CommandResult:
            request_args = {k: v for k, v in args.items() if k != POSITIONAL_KEY}
            parts = build_http_request(path, options, request_args)

            headers = dict(self.headers)
            if context.services.get(self.namespace):
                headers.update(context.services[self.namespace].headers)
            if context.auth is not None:
                headers.update(auth_headers(auth, context.auth.get_token()))
            headers.update(parts.headers)

            transport = context.transport or self._transport
            response = await transport.request(
                method,
                f"{self.base_url(context)}{parts.path}",
                params=parts.params,
                headers=headers,
                json_body=parts.body,
            )

            if not response.ok:
                return CommandResult.failure(
                    f"{method} {parts.path} returned HTTP {response.status_code}: {response.text[:200]}",
                    code=f"http_{response.status_code}",
                    status_code=response.status_code,
                )

            data = response.data if response.data is not None else response.text
            return CommandResult(success=True, data=data, metadata={"status_code": response.status_code})

        return handler
