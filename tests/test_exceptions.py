"""Tests for the error hierarchy and revert mapping."""

import asyncio

import pytest

from compute_market.common.exceptions import (
    AlreadyVoted,
    ApprovalInsufficient,
    ComputeMarketError,
    ContractCallReverted,
    InfrastructureError,
    InvalidArgument,
    NotATokenHolder,
    PreconditionFailed,
    RpcUnavailable,
)
from compute_market.services.base import gather_or_raise, map_revert, remote_operation


class TestErrorPayloads:
    """Tests for to_dict() payloads."""

    def test_invalid_argument(self):
        assert InvalidArgument("Amount is required").to_dict() == {
            "error_code": 400,
            "error_type": "InvalidArgument",
            "error_message": "Amount is required",
            "retryable": False,
        }

    def test_precondition_reason_defaults_to_class_name(self):
        error = NotATokenHolder("Only token holders can vote.")
        assert error.code == 403
        assert error.to_dict()["reason"] == "NotATokenHolder"

    def test_infrastructure_errors_are_retryable(self):
        error = RpcUnavailable("connection refused", operation="read token balance")
        assert error.retryable
        assert error.code == 503
        assert error.message == "Failed to read token balance: connection refused"


class TestMapRevert:
    """Tests for translating contract reverts."""

    @pytest.mark.parametrize("reason,expected", [
        ("Total would exceed approval", ApprovalInsufficient),
        ("Already voted", AlreadyVoted),
        ("ERC20: insufficient balance", PreconditionFailed),
        ("Not a token holder", NotATokenHolder),
    ])
    def test_known_reasons(self, reason, expected):
        mapped = map_revert(ContractCallReverted(reason), "prepare vote transaction")
        assert type(mapped) is expected
        assert mapped.reason == reason

    def test_unknown_reason(self):
        mapped = map_revert(ContractCallReverted("custom error 0xdeadbeef"), "prepare vote transaction")
        assert isinstance(mapped, InfrastructureError)
        assert mapped.message.startswith("Failed to prepare vote transaction")


class TestRemoteOperation:
    """Tests for failure classification around ledger reads."""

    def test_unexpected_errors_are_wrapped(self):
        with pytest.raises(InfrastructureError, match="Failed to read tenancy: boom"):
            with remote_operation("read tenancy"):
                raise RuntimeError("boom")

    def test_caller_errors_pass_through(self):
        with pytest.raises(InvalidArgument):
            with remote_operation("read tenancy"):
                raise InvalidArgument("bad")

    def test_named_infrastructure_errors_keep_their_operation(self):
        with pytest.raises(RpcUnavailable) as exc_info:
            with remote_operation("read tenancy"):
                raise RpcUnavailable("timed out", operation="eth_call")
        assert exc_info.value.operation == "eth_call"

    def test_other_domain_errors_pass_through(self):
        with pytest.raises(ComputeMarketError):
            with remote_operation("read tenancy"):
                raise ComputeMarketError("odd")


class TestGatherOrRaise:
    """Tests for parallel reads that fail as a group."""

    @pytest.mark.asyncio
    async def test_returns_results_in_order(self):
        async def value(v):
            return v

        assert await gather_or_raise(value(1), value(2)) == [1, 2]

    @pytest.mark.asyncio
    async def test_waits_for_siblings_then_raises_first_failure(self):
        finished = []

        async def fail_now():
            raise RpcUnavailable("first")

        async def fail_later():
            await asyncio.sleep(0.01)
            finished.append("later")
            raise RpcUnavailable("second")

        with pytest.raises(RpcUnavailable, match="first"):
            await gather_or_raise(fail_now(), fail_later())
        assert finished == ["later"]
