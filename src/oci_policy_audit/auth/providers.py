from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import oci

from ..util.errors import OCIClientError, map_oci_error

ConfigDict = Dict[str, Any]

AUTH_METHODS = ("auto", "cloud_shell", "config", "security_token", "instance", "resource")
CLOUD_SHELL_CONFIG_FILE = "/etc/oci/config"
CLOUD_SHELL_PROFILE = "DEFAULT"


@dataclass(frozen=True)
class AuthContext:
    """
    Holds resolved authentication context to construct OCI SDK clients.
    At least one of (config_dict, signer) is present. Signer-based contexts may
    also carry a config_dict for region/tenancy lookup (Cloud Shell, session tokens).
    """

    method: str  # cloud_shell|config|security_token|instance|resource (resolved final)
    config_dict: Optional[ConfigDict]
    signer: Optional[Any]
    profile: Optional[str]
    tenancy_ocid: Optional[str]

    @property
    def environment_label(self) -> str:
        if self.method == "cloud_shell":
            return "Cloud Shell"
        if self.method == "security_token":
            return f"Session token (profile: {self.profile or 'DEFAULT'})"
        if self.method == "instance":
            return "Instance Principal"
        if self.method == "resource":
            return "Resource Principal"
        return f"Local (profile: {self.profile or 'DEFAULT'})"

    @property
    def region(self) -> Optional[str]:
        if self.config_dict and self.config_dict.get("region"):
            return str(self.config_dict["region"])
        return _detect_region()


class AuthError(RuntimeError):
    pass


def is_cloud_shell() -> bool:
    """
    Cloud Shell exports OCI_TENANCY and OCI_CS_USER_OCID for every session.
    """
    return bool(os.getenv("OCI_TENANCY")) and bool(os.getenv("OCI_CS_USER_OCID"))


def _detect_region() -> Optional[str]:
    """
    Try to detect current region from environment (Cloud Shell, IMDS/RP flows).
    """
    return os.getenv("OCI_REGION") or os.getenv("OCI_CLI_REGION")


def _load_config(config_file: Optional[str], profile: Optional[str]) -> ConfigDict:
    location = config_file or oci.config.DEFAULT_LOCATION
    try:
        return oci.config.from_file(file_location=location, profile_name=profile or "DEFAULT")
    except Exception as e:
        mapped = map_oci_error(e, "OCI SDK error while loading config profile")
        if mapped:
            raise mapped from e
        raise AuthError(f"Failed to load OCI config profile '{profile or 'DEFAULT'}': {e}") from e


def _read_token(path: str) -> str:
    return Path(os.path.expanduser(path)).read_text(encoding="utf-8").strip()


def resolve_auth(
    method: str,
    profile: Optional[str],
    tenancy_ocid: Optional[str],
    config_file: Optional[str] = None,
) -> AuthContext:
    """
    Resolve auth according to requested method.
    - auto: Cloud Shell when detected, otherwise config-file profile
    - cloud_shell: delegation token from the Cloud Shell CLI config
    - config: ~/.oci/config API key profile
    - security_token: session profile in ~/.oci/config (oci session authenticate)
    - instance: Instance Principals
    - resource: Resource Principals
    """
    method = (method or "auto").lower()

    def ctx_from_config() -> AuthContext:
        resolved_profile = profile or "DEFAULT"
        cfg = _load_config(config_file, resolved_profile)
        ten = tenancy_ocid or cfg.get("tenancy")
        return AuthContext(method="config", config_dict=cfg, signer=None, profile=resolved_profile, tenancy_ocid=ten)

    def ctx_from_security_token() -> AuthContext:
        resolved_profile = profile or "DEFAULT"
        cfg = _load_config(config_file, resolved_profile)
        try:
            token = _read_token(cfg["security_token_file"])
            private_key = oci.signer.load_private_key_from_file(cfg["key_file"])
            signer = oci.auth.signers.SecurityTokenSigner(token, private_key)
        except KeyError as e:
            raise AuthError(f"Profile '{resolved_profile}' is missing {e} required for session token auth") from e
        except Exception as e:
            mapped = map_oci_error(e, "OCI SDK error while loading session token")
            if mapped:
                raise mapped from e
            raise AuthError(f"Failed to load session token for profile '{resolved_profile}': {e}") from e
        ten = tenancy_ocid or cfg.get("tenancy")
        return AuthContext(
            method="security_token", config_dict=cfg, signer=signer, profile=resolved_profile, tenancy_ocid=ten
        )

    def ctx_from_cloud_shell() -> AuthContext:
        location = config_file or os.getenv("OCI_CLI_CONFIG_FILE") or os.getenv("OCI_CONFIG_FILE") or CLOUD_SHELL_CONFIG_FILE
        resolved_profile = profile or os.getenv("OCI_CLI_PROFILE") or CLOUD_SHELL_PROFILE
        cfg = _load_config(location, resolved_profile)
        try:
            token = _read_token(cfg["delegation_token_file"])
            signer = oci.auth.signers.InstancePrincipalsDelegationTokenSigner(delegation_token=token)
        except KeyError as e:
            raise AuthError(f"Cloud Shell config is missing {e}; open a new Cloud Shell session") from e
        except Exception as e:
            mapped = map_oci_error(e, "OCI SDK error while resolving Cloud Shell delegation token")
            if mapped:
                raise mapped from e
            raise AuthError(f"Failed to resolve Cloud Shell delegation token: {e}") from e
        region = _detect_region()
        if region:
            cfg = dict(cfg, region=region)
        ten = tenancy_ocid or os.getenv("OCI_TENANCY") or cfg.get("tenancy")
        return AuthContext(method="cloud_shell", config_dict=cfg, signer=signer, profile=None, tenancy_ocid=ten)

    def ctx_from_ip() -> AuthContext:
        try:
            signer = oci.auth.signers.InstancePrincipalsSecurityTokenSigner()
        except Exception as e:
            mapped = map_oci_error(e, "OCI SDK error while resolving instance principals")
            if mapped:
                raise mapped from e
            raise AuthError(f"Failed to resolve instance principals: {e}") from e
        ten = tenancy_ocid or getattr(signer, "tenancy_id", None)
        return AuthContext(method="instance", config_dict=None, signer=signer, profile=None, tenancy_ocid=ten)

    def ctx_from_rp() -> AuthContext:
        try:
            signer = oci.auth.signers.get_resource_principals_signer()
        except Exception as e:
            mapped = map_oci_error(e, "OCI SDK error while resolving resource principals")
            if mapped:
                raise mapped from e
            raise AuthError(f"Failed to resolve resource principals: {e}") from e
        ten = tenancy_ocid or getattr(signer, "tenancy_id", None)
        return AuthContext(method="resource", config_dict=None, signer=signer, profile=None, tenancy_ocid=ten)

    if method == "cloud_shell":
        return ctx_from_cloud_shell()
    if method == "config":
        return ctx_from_config()
    if method == "security_token":
        return ctx_from_security_token()
    if method == "instance":
        return ctx_from_ip()
    if method == "resource":
        return ctx_from_rp()
    if method != "auto":
        raise AuthError(f"Unsupported auth method: {method}")

    if is_cloud_shell():
        return ctx_from_cloud_shell()
    try:
        return ctx_from_config()
    except OCIClientError:
        raise
    except Exception as e:
        raise AuthError(
            "Failed to resolve auth in 'auto' mode. Cloud Shell was not detected and the config profile "
            f"could not be loaded.\nLast error: {e}"
        ) from e


def get_tenancy_ocid(ctx: AuthContext) -> Optional[str]:
    """
    Return tenancy OCID if known. For config-file auth, it is read from config.
    For principal-based auth, caller may need to provide it via flag or env.
    """
    if ctx.tenancy_ocid:
        return ctx.tenancy_ocid
    if ctx.config_dict:
        return ctx.config_dict.get("tenancy")  # type: ignore[return-value]
    return None


def make_client(client_cls: Any, ctx: AuthContext, region: Optional[str] = None) -> Any:
    """
    Construct an OCI SDK client of type client_cls using the provided AuthContext.
    When using signer-based auth, a minimal config dict with region must be provided.
    """
    retry = getattr(oci.retry, "DEFAULT_RETRY_STRATEGY", None)
    kwargs: Dict[str, Any] = {}
    if retry is not None:
        kwargs["retry_strategy"] = retry

    if ctx.signer is not None:
        detected_region = region or ctx.region
        if not detected_region:
            raise AuthError(
                "Region is required for signer-based auth. Set OCI_REGION/OCI_CLI_REGION or pass an explicit region."
            )
        cfg = dict(ctx.config_dict or {})
        cfg["region"] = detected_region
        return client_cls(cfg, signer=ctx.signer, **kwargs)
    if ctx.config_dict is not None:
        cfg = dict(ctx.config_dict)
        if region:
            cfg["region"] = region
        return client_cls(cfg, **kwargs)
    raise AuthError("Invalid AuthContext: neither config_dict nor signer present")
