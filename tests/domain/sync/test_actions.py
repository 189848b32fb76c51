from __future__ import annotations

from featctl.domain.sync import (
    UNKNOWN_SERVER_ID,
    Conflict,
    CreateProposal,
    NoAction,
    ProposalMerged,
    SyncActionKind,
    SyncResult,
)
from tests.support.fakes import make_feature, make_proposal


def test_result_skips_no_action_and_counts_kinds() -> None:
    result = SyncResult()

    result.add(NoAction(local_id="FT-000001"))
    result.add(Conflict(local_id="FT-000002", description="x"))
    result.add(Conflict(local_id="FT-000003", description="y"))
    result.add(
        CreateProposal(local_id="FT-LOCAL-a", feature=make_feature("FT-LOCAL-a"), description="")
    )

    assert len(result.actions) == 3
    assert result.counts()[SyncActionKind.CONFLICT] == 2
    assert result.counts()[SyncActionKind.NONE] == 0
    assert [a.local_id for a in result.of_kind(SyncActionKind.CONFLICT)] == [
        "FT-000002",
        "FT-000003",
    ]


def test_variant_ids() -> None:
    create = CreateProposal(
        local_id="FT-LOCAL-a", feature=make_feature("FT-LOCAL-a"), description=""
    )
    merged = ProposalMerged(
        local_id="FT-LOCAL-a",
        server_id=UNKNOWN_SERVER_ID,
        proposal=make_proposal("FT-LOCAL-a"),
        description="",
    )

    assert create.server_id == ""
    assert create.kind is SyncActionKind.CREATE_PROPOSAL
    assert merged.server_id_known is False
