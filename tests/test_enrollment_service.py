"""Tests for enrollment reconciliation (app/services/enrollment.py)"""
import pytest
from unittest.mock import AsyncMock

from app.errors import UpstreamAPIError
from app.services.enrollment import EnrollmentOutcome, EnrollmentReconciler


@pytest.fixture
def reconciler(learnworlds):
    return EnrollmentReconciler(learnworlds.client())


class TestEnroll:
    @pytest.mark.asyncio
    async def test_creates_missing_user_then_enrolls(self, learnworlds, reconciler):
        outcome = await reconciler.enroll("a@x.com", "courseA", "Ada", "Lovelace")

        assert outcome == EnrollmentOutcome.ENROLLED
        assert len(learnworlds.users) == 1
        user = learnworlds.users[0]
        assert user["email"] == "a@x.com"
        assert user["last_name"] == "Lovelace"
        assert (user["id"], "courseA") in learnworlds.enrollments

    @pytest.mark.asyncio
    async def test_existing_user_is_not_recreated(self, learnworlds, reconciler):
        learnworlds.add_user("a@x.com", "u1")

        await reconciler.enroll("a@x.com", "courseA")

        assert [r.url.path for r in learnworlds.mutations] == ["/v2/users/u1/courses/courseA"]
        assert ("u1", "courseA") in learnworlds.enrollments

    @pytest.mark.asyncio
    async def test_enroll_failure_propagates(self, learnworlds, reconciler):
        learnworlds.add_user("a@x.com", "u1")
        learnworlds.enrollment_status = 409

        with pytest.raises(UpstreamAPIError):
            await reconciler.enroll("a@x.com", "courseA")

    @pytest.mark.asyncio
    async def test_create_race_reuses_user_found_on_recheck(self):
        client = AsyncMock()
        client.find_user_by_email.return_value = None
        client.create_user_if_not_exists.return_value = {"id": "u7", "email": "a@x.com"}

        outcome = await EnrollmentReconciler(client).enroll("a@x.com", "courseA")

        assert outcome == EnrollmentOutcome.ENROLLED
        client.create_user_if_not_exists.assert_awaited_once_with("a@x.com", "", "")
        client.enroll.assert_awaited_once_with("u7", "courseA")


class TestUnenroll:
    @pytest.mark.asyncio
    async def test_unenrolls_existing_membership(self, learnworlds, reconciler):
        learnworlds.add_user("a@x.com", "u1")
        learnworlds.enrollments.add(("u1", "courseA"))

        outcome = await reconciler.unenroll("a@x.com", "courseA")

        assert outcome == EnrollmentOutcome.UNENROLLED
        assert learnworlds.enrollments == set()

    @pytest.mark.asyncio
    async def test_missing_user_is_success_twice_without_mutation(self, learnworlds, reconciler):
        first = await reconciler.unenroll("ghost@x.com", "courseA")
        second = await reconciler.unenroll("ghost@x.com", "courseA")

        assert first == second == EnrollmentOutcome.USER_NOT_FOUND
        assert learnworlds.mutations == []
        assert learnworlds.users == []

    @pytest.mark.asyncio
    async def test_missing_membership_is_success(self, learnworlds, reconciler):
        learnworlds.add_user("a@x.com", "u1")

        outcome = await reconciler.unenroll("a@x.com", "courseA")

        assert outcome == EnrollmentOutcome.NOT_ENROLLED

    @pytest.mark.asyncio
    async def test_unexpected_delete_status_propagates(self, learnworlds, reconciler):
        learnworlds.add_user("a@x.com", "u1")
        learnworlds.enrollment_status = 500

        with pytest.raises(UpstreamAPIError):
            await reconciler.unenroll("a@x.com", "courseA")

    @pytest.mark.asyncio
    async def test_missing_user_runs_connection_diagnostic(self):
        client = AsyncMock()
        client.find_user_by_email.return_value = None
        client.test_connection.return_value = False

        outcome = await EnrollmentReconciler(client).unenroll("a@x.com", "courseA")

        assert outcome == EnrollmentOutcome.USER_NOT_FOUND
        client.test_connection.assert_awaited_once()
        client.unenroll.assert_not_awaited()


class TestReconcile:
    @pytest.mark.asyncio
    async def test_dispatches_on_desired_state(self, learnworlds, reconciler):
        assert await reconciler.reconcile("a@x.com", "courseA", enrolled=True) == EnrollmentOutcome.ENROLLED
        assert await reconciler.reconcile("a@x.com", "courseA", enrolled=False) == EnrollmentOutcome.UNENROLLED
        assert await reconciler.reconcile("a@x.com", "courseA", enrolled=False) == EnrollmentOutcome.NOT_ENROLLED
