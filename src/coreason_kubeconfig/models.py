# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_kubeconfig

"""
Data models for the coreason-kubeconfig package.
"""

import base64
import binascii
from enum import StrEnum
from typing import Annotated, Any, ClassVar, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    field_validator,
    model_validator,
)

from coreason_kubeconfig.exceptions import InputError, MalformedDataError

DEFAULT_API_GROUP_SUFFIX = "pinniped.dev"
DEFAULT_OIDC_CLIENT_ID = "pinniped-cli"
DEFAULT_OIDC_SCOPES = ("offline_access", "openid", "pinniped:request-audience")
DEFAULT_GENERATED_NAME_SUFFIX = "-pinniped"
DEFAULT_TIMEOUT = 600.0
DEFAULT_INSTALL_HINT = (
    "The pinniped CLI does not appear to be installed.  See https://get.pinniped.dev/cli for more details"
)
EXEC_API_VERSION = "client.authentication.k8s.io/v1beta1"


class FrontendType(StrEnum):
    TOKEN_CREDENTIAL_REQUEST_API = "TokenCredentialRequestAPI"
    IMPERSONATION_PROXY = "ImpersonationProxy"


class ConciergeMode(StrEnum):
    """How the client reaches the Concierge. AUTO means "autodiscover"."""

    AUTO = ""
    TOKEN_CREDENTIAL_REQUEST_API = "TokenCredentialRequestAPI"
    IMPERSONATION_PROXY = "ImpersonationProxy"

    @classmethod
    def parse(cls, value: "str | ConciergeMode | None") -> "ConciergeMode":
        if isinstance(value, ConciergeMode):
            return value
        if not value:
            return cls.AUTO
        for mode in (cls.TOKEN_CREDENTIAL_REQUEST_API, cls.IMPERSONATION_PROXY):
            if value.lower() == mode.value.lower():
                return mode
        raise InputError(
            f"invalid mode {value!r}, valid modes are TokenCredentialRequestAPI and ImpersonationProxy"
        )

    def matches(self, frontend: "KnownFrontend") -> bool:
        if self is ConciergeMode.AUTO:
            return True
        return frontend.type == self.value


class StrategyStatus(StrEnum):
    SUCCESS = "Success"
    ERROR = "Error"


class StrategyType(StrEnum):
    KUBE_CLUSTER_SIGNING_CERTIFICATE = "KubeClusterSigningCertificate"
    IMPERSONATION_PROXY = "ImpersonationProxy"


class StrategyReason(StrEnum):
    PENDING = "Pending"


def decode_ca_data(value: str, what: str) -> bytes:
    """
    Decodes base64 certificate authority data reported by a server-side object.

    Raises:
        MalformedDataError: If the value is not valid base64.
    """
    try:
        return base64.b64decode(value.replace("\n", "").replace("\r", ""), validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedDataError(f"{what} is invalid: {e}") from e


# --- CredentialIssuer ---------------------------------------------------------


class _Wire(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class TokenCredentialRequestAPIInfo(_Wire):
    server: str = ""
    certificate_authority_data: str = Field(default="", alias="certificateAuthorityData")


class ImpersonationProxyInfo(_Wire):
    endpoint: str = ""
    certificate_authority_data: str = Field(default="", alias="certificateAuthorityData")


class TokenCredentialRequestAPIFrontend(_Wire):
    type: Literal["TokenCredentialRequestAPI"] = "TokenCredentialRequestAPI"
    token_credential_request_info: TokenCredentialRequestAPIInfo = Field(
        default_factory=TokenCredentialRequestAPIInfo, alias="tokenCredentialRequestInfo"
    )


class ImpersonationProxyFrontend(_Wire):
    type: Literal["ImpersonationProxy"] = "ImpersonationProxy"
    impersonation_proxy_info: ImpersonationProxyInfo = Field(
        default_factory=ImpersonationProxyInfo, alias="impersonationProxyInfo"
    )


class UnknownFrontend(_Wire):
    """A frontend whose type this client does not understand. Always skipped."""

    type: str


def _frontend_tag(value: Any) -> str:
    frontend_type = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    if frontend_type in (FrontendType.TOKEN_CREDENTIAL_REQUEST_API, FrontendType.IMPERSONATION_PROXY):
        return str(frontend_type)
    return "unknown"


KnownFrontend = TokenCredentialRequestAPIFrontend | ImpersonationProxyFrontend

Frontend = Annotated[
    Annotated[TokenCredentialRequestAPIFrontend, Tag("TokenCredentialRequestAPI")]
    | Annotated[ImpersonationProxyFrontend, Tag("ImpersonationProxy")]
    | Annotated[UnknownFrontend, Tag("unknown")],
    Discriminator(_frontend_tag),
]


class Strategy(_Wire):
    type: str
    status: str
    reason: str = ""
    message: str = ""
    frontend: Frontend | None = None


class KubeConfigInfo(_Wire):
    """Legacy status block predating per-strategy frontends."""

    server: str = ""
    certificate_authority_data: str = Field(default="", alias="certificateAuthorityData")


class CredentialIssuer(_Wire):
    """
    Snapshot of a CredentialIssuer's name and status.

    Attributes:
        name (str): The object name.
        strategies (list[Strategy]): Strategies in the order reported by the server.
        kube_config_info (KubeConfigInfo | None): The legacy kubeconfig info block.
    """

    name: str
    strategies: list[Strategy] = Field(default_factory=list)
    kube_config_info: KubeConfigInfo | None = Field(default=None, alias="kubeConfigInfo")

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> "CredentialIssuer":
        """Builds a snapshot from a raw Kubernetes API object."""
        status = obj.get("status") or {}
        return cls(
            name=(obj.get("metadata") or {}).get("name", ""),
            strategies=status.get("strategies") or [],
            kubeConfigInfo=status.get("kubeConfigInfo"),
        )

    def has_pending_strategy(self) -> bool:
        return any(strategy.reason == StrategyReason.PENDING for strategy in self.strategies)


# --- Authenticators -------------------------------------------------------------


class JWTAuthenticatorTLS(_Wire):
    certificate_authority_data: str = Field(default="", alias="certificateAuthorityData")


class WebhookAuthenticator(_Wire):
    authenticator_type: ClassVar[str] = "webhook"

    kind: Literal["WebhookAuthenticator"] = "WebhookAuthenticator"
    name: str
    endpoint: str = ""

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> "WebhookAuthenticator":
        spec = obj.get("spec") or {}
        return cls(name=(obj.get("metadata") or {}).get("name", ""), endpoint=spec.get("endpoint", ""))


class JWTAuthenticator(_Wire):
    authenticator_type: ClassVar[str] = "jwt"

    kind: Literal["JWTAuthenticator"] = "JWTAuthenticator"
    name: str
    issuer: str = ""
    audience: str = ""
    tls: JWTAuthenticatorTLS | None = None

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> "JWTAuthenticator":
        spec = obj.get("spec") or {}
        return cls(
            name=(obj.get("metadata") or {}).get("name", ""),
            issuer=spec.get("issuer", ""),
            audience=spec.get("audience", ""),
            tls=spec.get("tls"),
        )


Authenticator = Annotated[WebhookAuthenticator | JWTAuthenticator, Field(discriminator="kind")]


# --- Supervisor upstream IDPs -----------------------------------------------------


class UpstreamIDP(_Wire):
    """
    An upstream identity provider advertised by a Supervisor.

    Type and flows are kept as the server sent them; values this client does not know
    are passed through rather than rejected.
    """

    name: str
    type: str
    flows: list[str] = Field(default_factory=list)

    def type_equals(self, other: str) -> bool:
        return self.type.lower() == other.lower()

    def has_flow(self, other: str) -> bool:
        return any(flow.lower() == other.lower() for flow in self.flows)


# --- Kubeconfig -------------------------------------------------------------------


class Cluster(BaseModel):
    """
    A kubeconfig cluster entry. `certificate_authority_data` holds raw PEM bytes;
    it is base64-encoded only when serialized.
    """

    model_config = ConfigDict(frozen=True)

    server: str = ""
    certificate_authority_data: bytes = b""
    tls_server_name: str = ""
    proxy_url: str = ""
    insecure_skip_tls_verify: bool = False

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Cluster":
        data = raw.get("certificate-authority-data") or ""
        return cls(
            server=raw.get("server", ""),
            certificate_authority_data=decode_ca_data(data, "cluster certificate-authority-data") if data else b"",
            tls_server_name=raw.get("tls-server-name", ""),
            proxy_url=raw.get("proxy-url", ""),
            insecure_skip_tls_verify=bool(raw.get("insecure-skip-tls-verify", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"server": self.server}
        if self.certificate_authority_data:
            out["certificate-authority-data"] = base64.b64encode(self.certificate_authority_data).decode("ascii")
        if self.tls_server_name:
            out["tls-server-name"] = self.tls_server_name
        if self.proxy_url:
            out["proxy-url"] = self.proxy_url
        if self.insecure_skip_tls_verify:
            out["insecure-skip-tls-verify"] = True
        return out


class ExecConfig(BaseModel):
    """The exec credential plugin invocation embedded in a kubeconfig user."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    api_version: str = Field(default=EXEC_API_VERSION, alias="apiVersion")
    command: str
    args: list[str] = Field(default_factory=list)
    env: list[dict[str, str]] = Field(default_factory=list)
    provide_cluster_info: bool = Field(default=True, alias="provideClusterInfo")
    install_hint: str = Field(default="", alias="installHint")


class AuthInfo(BaseModel):
    """A kubeconfig user entry. Fields other than `exec` are carried through untouched."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    exec_config: ExecConfig | dict[str, Any] | None = Field(default=None, alias="exec")


class Context(BaseModel):
    model_config = ConfigDict(frozen=True)

    cluster: str
    user: str


class KubeconfigNames(BaseModel):
    model_config = ConfigDict(frozen=True)

    context_name: str
    cluster_name: str
    user_name: str

    def with_suffix(self, suffix: str) -> "KubeconfigNames":
        return KubeconfigNames(
            context_name=self.context_name + suffix,
            cluster_name=self.cluster_name + suffix,
            user_name=self.user_name + suffix,
        )


class Kubeconfig(BaseModel):
    """
    A kubeconfig held as name-keyed maps. The YAML list form is produced by `to_dict`.
    """

    model_config = ConfigDict(frozen=True)

    clusters: dict[str, Cluster] = Field(default_factory=dict)
    users: dict[str, AuthInfo] = Field(default_factory=dict)
    contexts: dict[str, Context] = Field(default_factory=dict)
    current_context: str = ""

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Kubeconfig":
        try:
            return cls(
                clusters={
                    item["name"]: Cluster.from_dict(item.get("cluster") or {}) for item in raw.get("clusters") or []
                },
                users={
                    item["name"]: AuthInfo.model_validate(item.get("user") or {}) for item in raw.get("users") or []
                },
                contexts={
                    item["name"]: Context(
                        cluster=(item.get("context") or {}).get("cluster", ""),
                        user=(item.get("context") or {}).get("user", ""),
                    )
                    for item in raw.get("contexts") or []
                },
                current_context=raw.get("current-context") or "",
            )
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise MalformedDataError(f"kubeconfig is malformed: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        return {
            "apiVersion": "v1",
            "kind": "Config",
            "clusters": [{"name": name, "cluster": cluster.to_dict()} for name, cluster in self.clusters.items()],
            "users": [
                {"name": name, "user": user.model_dump(by_alias=True, exclude_none=True)}
                for name, user in self.users.items()
            ],
            "contexts": [
                {"name": name, "context": {"cluster": ctx.cluster, "user": ctx.user}}
                for name, ctx in self.contexts.items()
            ],
            "current-context": self.current_context,
        }


class AccessDescriptor(Kubeconfig):
    """
    The generated kubeconfig: exactly one cluster, user and context that reference each other.
    """

    @model_validator(mode="after")
    def check_references(self) -> "AccessDescriptor":
        if not self.clusters or not self.users or not self.contexts:
            raise ValueError("access descriptor requires a cluster, a user and a context")
        for name, ctx in self.contexts.items():
            if ctx.cluster not in self.clusters:
                raise ValueError(f"context {name!r} references unknown cluster {ctx.cluster!r}")
            if ctx.user not in self.users:
                raise ValueError(f"context {name!r} references unknown user {ctx.user!r}")
        if self.current_context not in self.contexts:
            raise ValueError(f"current context {self.current_context!r} does not exist")
        return self


# --- Request and result -----------------------------------------------------------


class ResolutionRequest(BaseModel):
    """
    Everything the caller supplied. Empty/None fields are eligible for autodiscovery.

    The model is frozen; discovery produces updated copies via `model_copy(update=...)`.
    """

    model_config = ConfigDict(frozen=True)

    kubeconfig_path: str | None = None
    kubeconfig_context: str | None = None

    static_token: str = ""
    static_token_env: str = ""

    concierge_disabled: bool = False
    credential_issuer: str = ""
    authenticator_type: str = ""
    authenticator_name: str = ""
    api_group_suffix: str = DEFAULT_API_GROUP_SUFFIX
    concierge_ca_bundle: bytes = b""
    concierge_endpoint: str = ""
    concierge_mode: ConciergeMode = ConciergeMode.AUTO
    skip_wait: bool = False

    oidc_issuer: str = ""
    oidc_client_id: str = DEFAULT_OIDC_CLIENT_ID
    oidc_listen_port: int = Field(default=0, ge=0, le=65535)
    oidc_scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_OIDC_SCOPES))
    oidc_skip_browser: bool = False
    oidc_skip_listen: bool = False
    oidc_session_cache: str = ""
    oidc_debug_session_cache: bool = False
    oidc_ca_bundle: bytes = b""
    oidc_request_audience: str = ""
    upstream_idp_name: str = ""
    upstream_idp_type: str = ""
    upstream_idp_flow: str = ""

    skip_validation: bool = False
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    generated_name_suffix: str = DEFAULT_GENERATED_NAME_SUFFIX
    credential_cache: str | None = None
    install_hint: str = DEFAULT_INSTALL_HINT

    @field_validator("concierge_mode", mode="before")
    @classmethod
    def parse_mode(cls, v: Any) -> ConciergeMode:
        try:
            return ConciergeMode.parse(v)
        except InputError as e:
            raise ValueError(str(e)) from e

    @property
    def upstream_idp_fully_specified(self) -> bool:
        return bool(self.upstream_idp_name and self.upstream_idp_type and self.upstream_idp_flow)


class ResolvedConfig(BaseModel):
    """
    The merged result of explicit input and discovery, ready for assembly.

    Attributes:
        request (ResolutionRequest): The request with every discoverable field filled in.
        cluster (Cluster): The cluster entry, already pointed at the Concierge endpoint when enabled.
        names (KubeconfigNames): Names of the generated cluster, user and context entries.
    """

    model_config = ConfigDict(frozen=True)

    request: ResolutionRequest
    cluster: Cluster
    names: KubeconfigNames
