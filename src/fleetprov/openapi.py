"""OpenAPI schema customization for the fleet provisioning API."""

from typing import Any

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi

from fleetprov.models.errors import ProblemDetail

# Domain error statuses every registry/enrollment route may return
PROBLEM_RESPONSES: dict[str, str] = {
    "400": "Invalid input or invalid hierarchy state",
    "401": "Missing X-Account-ID header",
    "404": "Token or device not found",
    "409": "Duplicate uuid, concurrent update or token already fulfilled",
    "410": "Enrollment token expired",
    "422": "Validation Error",
    "500": "Internal Server Error",
    "502": "Certificate Authority failure",
    "503": "Identity store failure",
}


def custom_openapi(app: FastAPI) -> dict[str, Any]:
    """Generate customized OpenAPI schema for the API.

    Args:
        app: The FastAPI application instance.

    Returns:
        Customized OpenAPI schema dictionary.
    """
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description="""
# Fleet Provisioning API

Enrollment tokens, device certificate issuance and the device hierarchy
registry.

## Enrollment

1. **Issue token**: `POST /api/token/generate` with `timeInMinutes`
2. **Submit**: the device posts `Token`, `Device type`, `Chip`, `Version`
   to `POST /api/token/submit` and receives `signedCert` and `privateKey`
3. **Trust anchor**: `GET /api/cert/ca` returns the root certificate

A token can be exchanged exactly once. A failed signing leaves it usable.

## Registry

Devices are `standalone`, `gateway` or `end_device`. End devices attach to
gateways (`/api/devices/{gateway_id}/zigbee`); detaching deletes the end
device. Registry routes require the `X-Account-ID` header.

## Error Handling

All errors follow [RFC 7807 Problem Details](https://datatracker.ietf.org/doc/html/rfc7807)
with a stable `kind` member:

```json
{
  "type": "https://datatracker.ietf.org/doc/html/rfc7231#section-6.5.8",
  "title": "Token Already Fulfilled",
  "status": 409,
  "detail": "Certificate already issued for this token",
  "instance": "/api/token/submit",
  "kind": "already_fulfilled"
}
```
        """,
        routes=app.routes,
    )

    openapi_schema["tags"] = [
        {"name": "Health", "description": "Health check endpoints for monitoring"},
        {"name": "enrollment", "description": "Enrollment tokens and certificate issuance"},
        {"name": "certificates", "description": "Root CA distribution"},
        {"name": "devices", "description": "Device registry and gateway hierarchy"},
    ]

    components = openapi_schema.setdefault("components", {})
    schemas = components.setdefault("schemas", {})
    problem_schema = ProblemDetail.model_json_schema(
        ref_template="#/components/schemas/{model}"
    )
    for name, definition in problem_schema.pop("$defs", {}).items():
        schemas.setdefault(name, definition)
    schemas.setdefault("ProblemDetail", problem_schema)
    components["securitySchemes"] = {
        "AccountHeader": {
            "type": "apiKey",
            "in": "header",
            "name": "X-Account-ID",
            "description": "Account id set by the authentication layer",
        }
    }

    # Add RFC 7807 error responses to all endpoints
    for path in openapi_schema["paths"].values():
        for operation in path.values():
            if isinstance(operation, dict) and "responses" in operation:
                for code, description in PROBLEM_RESPONSES.items():
                    operation["responses"].setdefault(
                        code,
                        {
                            "description": description,
                            "content": {
                                "application/problem+json": {
                                    "schema": {"$ref": "#/components/schemas/ProblemDetail"}
                                }
                            },
                        },
                    )

    app.openapi_schema = openapi_schema
    return app.openapi_schema


def configure_openapi(app: FastAPI) -> None:
    """Configure the FastAPI app to use custom OpenAPI schema.

    Args:
        app: The FastAPI application instance.
    """
    app.openapi = lambda: custom_openapi(app)  # type: ignore[method-assign]
