"""HTTP-operation (OpenAPI 3.x) mapper.

Turns ``(path, method, operation)`` triples from an OpenAPI document into
``Command`` objects. Every function here is pure; fetching the document and
performing requests belong to ``servicectl.sources.openapi_source``.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional

from pydantic import BaseModel

from ..errors import MappingError
from ..models import ArgumentType, Command, CommandHandler, OptionDefinition
from .usage import command_prefix, format_usage

logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "post", "put", "delete", "patch")

SKIPPED_PATH_MARKERS = ("/health", "/internal")

MAX_EXAMPLES = 3

_ACTIONS = {
    "GET": "get",
    "POST": "create",
    "PUT": "update",
    "PATCH": "update",
    "DELETE": "delete",
}

_OPENAPI_TYPES = {
    "string": ArgumentType.STRING,
    "number": ArgumentType.NUMBER,
    "integer": ArgumentType.NUMBER,
    "boolean": ArgumentType.BOOLEAN,
    "array": ArgumentType.ARRAY,
    "object": ArgumentType.JSON,
    "file": ArgumentType.FILE,
}

HandlerFactory = Callable[[str, str, Mapping[str, Any]], CommandHandler]


class Operation(NamedTuple):
    path: str
    method: str
    operation: Mapping[str, Any]


class AuthRequirements(BaseModel):
    """First security scheme declared by a document."""

    type: str = "none"  # apiKey | bearer | oauth2 | none
    location: Optional[str] = None
    name: Optional[str] = None


def kebab_case(value: str) -> str:
    """``storeDocument`` / ``store_document`` / ``store document`` -> ``store-document``."""
    value = re.sub(r"([a-z])([A-Z])", r"\1-\2", value)
    value = re.sub(r"[\s_]+", "-", value)
    return value.lower()


def map_openapi_type(openapi_type: Optional[str]) -> ArgumentType:
    return _OPENAPI_TYPES.get(openapi_type or "", ArgumentType.STRING)


def is_skipped_path(path: str) -> bool:
    return any(marker in path for marker in SKIPPED_PATH_MARKERS)


def generate_command_name(path: str, method: str, operation: Mapping[str, Any]) -> str:
    """Kebab-cased ``operationId``, else ``<verb>-<resource>``.

    Examples:
        POST /documents -> create-documents
        GET /documents/{id} -> get-documents
        DELETE /v1/users/{user_id}/api-keys/{id} -> delete-apikeys
    """
    operation_id = operation.get("operationId")
    if operation_id:
        return kebab_case(operation_id)

    segments = [
        re.sub(r"[^a-zA-Z0-9]", "", part)
        for part in path.split("/")
        if part and not part.startswith("{")
    ]
    action = _ACTIONS.get(method.upper(), "execute")
    resource = segments[-1] if segments and segments[-1] else "item"
    return f"{action}-{resource}"


def is_streaming(operation: Mapping[str, Any]) -> bool:
    if operation.get("x-streaming") is True:
        return True
    return "stream" in (operation.get("description") or "").lower()


def _option(name: str, schema: Mapping[str, Any], required: bool, description: str,
            location: str) -> OptionDefinition:
    enum = schema.get("enum")
    return OptionDefinition(
        name=name,
        long=f"--{name}",
        description=description,
        type=map_openapi_type(schema.get("type")),
        required=required,
        default=schema.get("default"),
        choices=list(enum) if enum else None,
        location=location,
    )


def _body_options(schema: Mapping[str, Any], body_required: bool) -> List[OptionDefinition]:
    if schema.get("type") == "object" and schema.get("properties"):
        required_props = set(schema.get("required") or [])
        return [
            _option(name, prop or {}, name in required_props, (prop or {}).get("description") or "", "body")
            for name, prop in schema["properties"].items()
        ]

    if "$ref" in schema:
        return [
            OptionDefinition(
                name="body",
                long="--body",
                description="Request body",
                type=ArgumentType.JSON,
                required=body_required,
                location="body",
            )
        ]

    return [
        OptionDefinition(
            name="body",
            long="--body",
            description=schema.get("description") or "Request body",
            type=map_openapi_type(schema.get("type")),
            required=body_required,
            location="body",
        )
    ]


def extract_options(operation: Mapping[str, Any]) -> List[OptionDefinition]:
    """Declared parameters first, then the JSON request body."""
    options: List[OptionDefinition] = []
    seen = set()

    for param in operation.get("parameters") or []:
        if "$ref" in param:
            logger.debug(f"Unresolved parameter reference {param['$ref']} skipped")
            continue
        name = param.get("name")
        if not name or name in seen:
            continue
        seen.add(name)
        options.append(
            _option(
                name,
                param.get("schema") or {},
                bool(param.get("required", False)),
                param.get("description") or "",
                param.get("in", "query"),
            )
        )

    request_body = operation.get("requestBody") or {}
    json_content = (request_body.get("content") or {}).get("application/json") or {}
    body_schema = json_content.get("schema")
    if body_schema:
        for option in _body_options(body_schema, bool(request_body.get("required", False))):
            if option.name in seen:
                logger.debug(f"Body property '{option.name}' shadows a parameter, skipped")
                continue
            seen.add(option.name)
            options.append(option)

    return options


def _required_token(option: OptionDefinition) -> str:
    if option.type == ArgumentType.BOOLEAN:
        return option.long
    if option.type == ArgumentType.FILE:
        return f"{option.long} /path/to/file"
    if option.choices:
        return f"{option.long} {option.choices[0]}"
    return f"{option.long} <value>"


def _extended_token(option: OptionDefinition) -> str:
    if option.type == ArgumentType.BOOLEAN:
        return option.long
    if option.default is not None:
        default = option.default if isinstance(option.default, str) else json.dumps(option.default)
        return f"{option.long} {default}"
    return f"{option.long} <value>"


def generate_examples(prefix: str, options: List[OptionDefinition]) -> List[str]:
    """Minimal, extended (up to two optional options) and JSON-output examples."""
    required = [opt for opt in options if opt.required]
    optional = [opt for opt in options if not opt.required]

    basic = " ".join([prefix] + [_required_token(opt) for opt in required])
    examples = [basic]

    if optional:
        tokens = [_extended_token(opt) for opt in required + optional[:2]]
        examples.append(" ".join([prefix] + tokens))

    examples.append(f"{basic} --output-format json")
    return examples[:MAX_EXAMPLES]


def map_operation(
    path: str,
    method: str,
    operation: Mapping[str, Any],
    namespace: str,
    handler: CommandHandler,
    program_name: str = "servicectl",
    requires_auth: bool = False,
) -> Optional[Command]:
    """Map one operation; returns None for health/internal paths.

    Raises:
        MappingError: If the operation is not an object
    """
    if is_skipped_path(path):
        return None
    if not isinstance(operation, Mapping):
        raise MappingError(
            f"Operation {method.upper()} {path} is a {type(operation).__name__}, not an object",
            payload={"path": path, "method": method.upper()},
        )

    method = method.upper()
    name = generate_command_name(path, method, operation)
    options = extract_options(operation)
    tags = operation.get("tags") or []

    return Command(
        name=name,
        namespace=namespace,
        description=operation.get("summary") or operation.get("description") or f"{method} {path}",
        handler=handler,
        category=tags[0] if tags else None,
        options=options,
        usage=format_usage(program_name, namespace, name, options),
        examples=generate_examples(command_prefix(program_name, namespace, name), options),
        streaming=is_streaming(operation),
        requires_auth=requires_auth,
        destructive=method == "DELETE",
        metadata={
            "http_method": method,
            "endpoint": path,
            "operation_id": operation.get("operationId"),
        },
    )


def get_all_operations(spec: Mapping[str, Any]) -> List[Operation]:
    operations = []
    for path, path_item in (spec.get("paths") or {}).items():
        for method, operation in (path_item or {}).items():
            if method.lower() in HTTP_METHODS:
                operations.append(Operation(path, method.upper(), operation or {}))
    return operations


def resolve_ref(spec: Mapping[str, Any], ref: str) -> Any:
    """Resolve a local ``#/...`` JSON pointer; None when it does not resolve."""
    if not ref.startswith("#/"):
        return None

    current: Any = spec
    for part in ref[2:].split("/"):
        part = part.replace("~1", "/").replace("~0", "~")
        if not isinstance(current, Mapping) or part not in current:
            return None
        current = current[part]
    return current


def resolve_parameters(spec: Mapping[str, Any], path_item: Mapping[str, Any],
                       operation: Mapping[str, Any]) -> Dict[str, Any]:
    """Copy of ``operation`` with path-level parameters merged and ``$ref``s resolved.

    Operation-level parameters override path-level ones with the same
    ``(name, in)``.
    """
    if not isinstance(operation, Mapping):
        raise MappingError(f"Operation is a {type(operation).__name__}, not an object")
    merged: Dict[tuple, Any] = {}
    for param in list(path_item.get("parameters") or []) + list(operation.get("parameters") or []):
        if not isinstance(param, Mapping):
            raise MappingError(f"Parameter entry {param!r} is not an object")
        if "$ref" in param:
            resolved = resolve_ref(spec, param["$ref"])
            if not isinstance(resolved, Mapping):
                logger.warning(f"Could not resolve parameter reference {param['$ref']}")
                continue
            param = resolved
        merged[(param.get("name"), param.get("in"))] = param

    resolved_op = dict(operation)
    resolved_op["parameters"] = list(merged.values())
    return resolved_op


def get_auth_requirements(spec: Mapping[str, Any]) -> AuthRequirements:
    schemes = (spec.get("components") or {}).get("securitySchemes") or {}
    if not schemes:
        return AuthRequirements()

    scheme = next(iter(schemes.values())) or {}
    scheme_type = scheme.get("type")

    if scheme_type == "apiKey":
        return AuthRequirements(type="apiKey", location=scheme.get("in"), name=scheme.get("name"))
    if scheme_type == "http" and scheme.get("scheme") == "bearer":
        return AuthRequirements(type="bearer")
    if scheme_type == "oauth2":
        return AuthRequirements(type="oauth2")
    return AuthRequirements()


def map_spec(
    spec: Mapping[str, Any],
    namespace: str,
    handler_factory: HandlerFactory,
    program_name: str = "servicectl",
) -> List[Command]:
    """Map every operation of a document.

    ``handler_factory(path, method, operation)`` builds the handler for each
    operation; it receives the operation with its parameters already resolved.
    """
    requires_auth = get_auth_requirements(spec).type != "none"
    paths = spec.get("paths") or {}
    commands = []

    for path, method, operation in get_all_operations(spec):
        if is_skipped_path(path):
            continue
        try:
            operation = resolve_parameters(spec, paths.get(path) or {}, operation)
            command = map_operation(
                path,
                method,
                operation,
                namespace,
                handler_factory(path, method, operation),
                program_name=program_name,
                requires_auth=requires_auth,
            )
        except MappingError as exc:
            logger.warning(f"Skipping {method} {path} in {namespace}: {exc}")
            continue
        if command is not None:
            commands.append(command)

    return commands
