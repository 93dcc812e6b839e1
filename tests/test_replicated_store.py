"""
tests/test_replicated_store.py
=============================

Tests for the replicated store on a simulated three-node cluster.
"""

import pytest

from paxoskv.errors import ConsensusError, InvalidRequestError, NotLeaderError
from paxoskv.services.rpc_service import StoreRPCService
from paxoskv.simulation.scenarios import elect_leader, learn_all


@pytest.fixture
async def elected(cluster):
    """Cluster with localhost:9001 elected on every node"""
    await elect_leader(cluster)
    return cluster


@pytest.mark.asyncio
async def test_put_replicates_to_all_nodes(elected):
    """Test a committed put is readable everywhere after one learner pass"""
    leader, follower, other = elected

    await leader.store.put("k", "v1")
    await learn_all(elected)

    for node in elected:
        assert await node.store.get("k") == "v1"


@pytest.mark.asyncio
async def test_put_on_follower_is_rejected(elected):
    """Test a write on a non-leader names the leader"""
    leader, follower, other = elected

    with pytest.raises(NotLeaderError) as exc_info:
        await follower.store.put("k", "v2")

    assert exc_info.value.leader == "localhost:9001"
    assert "Not leader: localhost:9002" in str(exc_info.value)


@pytest.mark.asyncio
async def test_put_before_election_is_rejected(cluster):
    """Test no node accepts writes before it has learned a leader"""
    with pytest.raises(NotLeaderError) as exc_info:
        await cluster[0].store.put("k", "v")

    assert exc_info.value.leader is None


@pytest.mark.asyncio
async def test_put_survives_one_failing_acceptor(elected, failure_simulator):
    """Test two of three acceptors commit a write; the failing node lags"""
    leader, follower, other = elected
    failure_simulator.fail_node(other.address)

    await leader.store.put("k", "v1")
    await learn_all(elected)

    assert await leader.store.get("k") == "v1"
    assert await follower.store.get("k") == "v1"
    assert await other.store.get("k") is None


@pytest.mark.asyncio
async def test_put_fails_without_quorum(elected, failure_simulator):
    """Test a write fails when two of three acceptors are failing"""
    leader, follower, other = elected
    failure_simulator.fail_node(follower.address)
    failure_simulator.fail_node(other.address)

    with pytest.raises(ConsensusError, match="prepare quorum failed: 1/3"):
        await leader.store.put("k", "v1")

    await learn_all(elected)
    assert await leader.store.get("k") is None


@pytest.mark.asyncio
async def test_put_fails_when_peer_is_down(elected):
    """Test a stopped peer counts against the quorum like a failure"""
    leader, follower, other = elected
    await other.stop()

    await leader.store.put("k", "v1")

    await follower.stop()
    with pytest.raises(ConsensusError):
        await leader.store.put("k", "v2")


@pytest.mark.asyncio
async def test_validation_precedes_leadership(elected):
    """Test empty keys and values are rejected even on a follower"""
    leader, follower, other = elected

    with pytest.raises(InvalidRequestError):
        await follower.store.put("", "v")
    with pytest.raises(InvalidRequestError):
        await leader.store.put("   ", "v")
    with pytest.raises(InvalidRequestError):
        await leader.store.put("k", "")
    with pytest.raises(InvalidRequestError):
        await follower.store.delete("")


@pytest.mark.asyncio
async def test_delete_replicates(elected):
    """Test a committed delete removes the key everywhere"""
    leader = elected[0]

    await leader.store.put("k", "v")
    await learn_all(elected)
    await leader.store.delete("k")
    await learn_all(elected)

    for node in elected:
        assert await node.store.get("k") is None


@pytest.mark.asyncio
async def test_delete_missing_key(elected):
    """Test deleting a key the leader has not learned is rejected"""
    with pytest.raises(InvalidRequestError, match="Key not found: ghost"):
        await elected[0].store.delete("ghost")


@pytest.mark.asyncio
async def test_delete_before_learning_is_rejected(elected):
    """Test the existence check reads the leader's learned map"""
    leader = elected[0]
    await leader.store.put("k", "v")

    with pytest.raises(InvalidRequestError):
        await leader.store.delete("k")


@pytest.mark.asyncio
async def test_delete_on_follower_is_rejected(elected):
    with pytest.raises(NotLeaderError):
        await elected[1].store.delete("k")


@pytest.mark.asyncio
async def test_get_missing_key(elected):
    """Test a get on an unknown key returns None"""
    assert await elected[2].store.get("missing") is None


@pytest.mark.asyncio
async def test_overwrite(elected):
    """Test the latest put wins after learning"""
    leader = elected[0]

    await leader.store.put("k", "v1")
    await leader.store.put("k", "v2")
    await learn_all(elected)

    for node in elected:
        assert await node.store.get("k") == "v2"


@pytest.mark.asyncio
async def test_no_op_proposal(elected):
    """Test a no-op round commits without changing any map"""
    leader = elected[0]

    assert await leader.store.no_op_proposal() is True
    await learn_all(elected)

    for node in elected:
        assert node.store.learner.stats["noops"] == 1
        assert node.store.store.data == {}


@pytest.mark.asyncio
async def test_no_op_proposal_failure_is_reported(elected, failure_simulator):
    """Test a failed no-op round returns False instead of raising"""
    for node in elected[1:]:
        failure_simulator.fail_node(node.address)

    assert await elected[0].store.no_op_proposal() is False


@pytest.mark.asyncio
async def test_status(elected):
    status = elected[1].store.get_status()

    assert status["leader"] == "localhost:9001"
    assert status["is_leader"] is False
    assert status["proposer"]["quorum"] == 2


@pytest.mark.asyncio
async def test_non_string_key_or_value_is_rejected(elected):
    """Test JSON keys and values that are not strings never reach consensus"""
    leader = elected[0]
    service = StoreRPCService(leader.store, leader.network_manager)

    for payload in ({"key": ["bad"], "value": "v"},
                    {"key": {"a": 1}, "value": "v"},
                    {"key": "k", "value": 5}):
        result = await service.handle_put(payload)
        assert result["success"] is False
        assert result["error"] == "invalid_request"

    assert (await service.handle_delete({"key": ["bad"]}))["error"] == "invalid_request"
    assert leader.store.proposer.stats["rounds"] == 0


@pytest.mark.asyncio
async def test_rejected_write_does_not_stall_learners(elected):
    """Test writes around a rejected one are all applied in a single scan"""
    leader = elected[0]

    await leader.store.put("good", "v")
    with pytest.raises(InvalidRequestError):
        await leader.store.put(["bad"], "v")
    await leader.store.put("later", "w")

    await learn_all(elected)

    for node in elected:
        assert await node.store.get("good") == "v"
        assert await node.store.get("later") == "w"
