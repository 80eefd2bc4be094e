"""
Tests for the execution service client
"""
from unittest.mock import Mock, patch

import pytest

from adpilot.domain.entities.operation import ExecutableOperation
from adpilot.infrastructure.execution.execution_client import ExecutionClient, ExecutionDispatchError

OPERATIONS = [
    ExecutableOperation(method="POST", endpoint="/111", params={"status": "PAUSED"}),
    ExecutableOperation(method="POST", endpoint="/222", params={"daily_budget": 5000}),
]


@pytest.fixture
def mock_supabase():
    with patch("adpilot.infrastructure.execution.execution_client.get_supabase") as mock_get:
        client = Mock()
        mock_get.return_value = client
        yield client


@pytest.mark.asyncio
async def test_dispatch_sends_batch_in_one_call(mock_supabase):
    mock_supabase.functions.invoke.return_value = {"results": []}

    data = await ExecutionClient(function_name="bront-execution").dispatch(OPERATIONS)

    assert data == {"results": []}
    mock_supabase.functions.invoke.assert_called_once()
    name = mock_supabase.functions.invoke.call_args.args[0]
    options = mock_supabase.functions.invoke.call_args.kwargs["invoke_options"]
    assert name == "bront-execution"
    assert options["body"] == {"operations": [op.to_dict() for op in OPERATIONS]}


@pytest.mark.asyncio
@pytest.mark.parametrize("raw,expected", [
    (b'{"error": "token expired"}', {"error": "token expired"}),
    ('{"results": [{"success": true}]}', {"results": [{"success": True}]}),
    ("", {}),
    (None, {}),
])
async def test_dispatch_decodes_body(mock_supabase, raw, expected):
    mock_supabase.functions.invoke.return_value = raw

    assert await ExecutionClient(function_name="fn").dispatch(OPERATIONS) == expected


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", ["<html>", b"[1, 2]"])
async def test_dispatch_rejects_invalid_body(mock_supabase, raw):
    mock_supabase.functions.invoke.return_value = raw

    with pytest.raises(ExecutionDispatchError):
        await ExecutionClient(function_name="fn").dispatch(OPERATIONS)


@pytest.mark.asyncio
async def test_transport_failure_becomes_dispatch_error(mock_supabase):
    mock_supabase.functions.invoke.side_effect = ConnectionError("network down")

    with pytest.raises(ExecutionDispatchError, match="network down"):
        await ExecutionClient(function_name="fn").dispatch(OPERATIONS)
