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
Chooses one upstream identity provider, and one flow for it, from the Supervisor's list.
"""

import json
from collections.abc import Sequence

from coreason_kubeconfig.exceptions import AmbiguousError, NotFoundError
from coreason_kubeconfig.models import UpstreamIDP
from coreason_kubeconfig.utils.logger import logger


def _upstreams_json(idps: Sequence[UpstreamIDP]) -> str:
    entries = []
    for idp in idps:
        entry: dict[str, object] = {"name": idp.name, "type": idp.type}
        if idp.flows:
            entry["flows"] = list(idp.flows)
        entries.append(entry)
    return json.dumps(entries, separators=(",", ":"))


def select_upstream_idp_name_and_type(
    idps: Sequence[UpstreamIDP],
    specified_name: str = "",
    specified_type: str = "",
) -> UpstreamIDP:
    """
    Picks the upstream identity provider matching the explicit name and/or type.

    With both given, the entry must match both. With one given, exactly one entry must
    match it. With neither, the list must hold exactly one entry. Type matching is
    case-insensitive; name matching is exact.

    Args:
        idps: The upstreams advertised by the Supervisor, in server order.
        specified_name: The explicit upstream name, or empty.
        specified_type: The explicit upstream type, or empty.

    Returns:
        UpstreamIDP: The selected upstream.

    Raises:
        AmbiguousError: If zero or several entries match; lists every upstream found.
    """
    found = _upstreams_json(idps)

    if specified_name and specified_type:
        for idp in idps:
            if idp.name == specified_name and idp.type_equals(specified_type):
                return idp
        raise AmbiguousError(
            f"no Supervisor upstream identity providers with name {specified_name!r} of type "
            f"{specified_type!r} were found. Found these upstreams: {found}",
            candidates=list(idps),
        )

    if specified_type:
        matches = [idp for idp in idps if idp.type_equals(specified_type)]
        if not matches:
            raise AmbiguousError(
                f"no Supervisor upstream identity providers of type {specified_type!r} were found. "
                f"Found these upstreams: {found}",
                candidates=list(idps),
            )
        if len(matches) > 1:
            raise AmbiguousError(
                f"multiple Supervisor upstream identity providers of type {specified_type!r} were found, "
                "so the --upstream-identity-provider-name flag must be specified. "
                f"Found these upstreams: {found}",
                candidates=matches,
            )
        return matches[0]

    if specified_name:
        matches = [idp for idp in idps if idp.name == specified_name]
        if not matches:
            raise AmbiguousError(
                f"no Supervisor upstream identity providers with name {specified_name!r} were found. "
                f"Found these upstreams: {found}",
                candidates=list(idps),
            )
        if len(matches) > 1:
            raise AmbiguousError(
                f"multiple Supervisor upstream identity providers with name {specified_name!r} were found, "
                "so the --upstream-identity-provider-type flag must be specified. "
                f"Found these upstreams: {found}",
                candidates=matches,
            )
        return matches[0]

    if len(idps) == 1:
        return idps[0]

    raise AmbiguousError(
        "multiple Supervisor upstream identity providers were found, so the "
        "--upstream-identity-provider-name/--upstream-identity-provider-type flags must be specified. "
        f"Found these upstreams: {found}",
        candidates=list(idps),
    )


def select_upstream_idp_flow(idp: UpstreamIDP, specified_flow: str = "") -> str:
    """
    Picks the client flow to use with `idp`.

    An upstream that advertises no flows accepts whatever was specified, unvalidated.
    When several flows are advertised and none was specified, the first one is used.

    Returns:
        str: The flow, or empty when none is advertised and none was specified.

    Raises:
        NotFoundError: If the specified flow is not advertised by `idp`.
    """
    flows = idp.flows

    if not flows:
        return specified_flow

    if specified_flow:
        if idp.has_flow(specified_flow):
            return specified_flow
        raise NotFoundError(
            f"no client flow {specified_flow!r} for Supervisor upstream identity provider {idp.name!r} "
            f"of type {idp.type!r} were found. "
            f"Found these flows: {', '.join(flows)}"
        )

    if len(flows) == 1:
        return flows[0]

    logger.bind(
        first_flow=flows[0],
        all_flows=list(flows),
    ).info("multiple client flows found, selecting first value as default")
    return flows[0]
