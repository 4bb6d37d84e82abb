"""
Enrollment reconciliation against LearnWorlds.

Drives one (email, course) pair to the wanted membership state. Unenroll is
forgiving: a missing user or a missing enrollment already means "not
enrolled", which is what a cancellation or refund asks for. Nothing here
retries; upstream failures propagate as UpstreamAPIError.
"""
import enum
import logging

from app.integrations.learnworlds import LearnWorldsClient

logger = logging.getLogger(__name__)


class EnrollmentOutcome(str, enum.Enum):
    ENROLLED = "enrolled"
    UNENROLLED = "unenrolled"
    USER_NOT_FOUND = "user_not_found"
    NOT_ENROLLED = "not_enrolled"


class EnrollmentReconciler:
    def __init__(self, client: LearnWorldsClient):
        self.client = client

    async def enroll(
        self,
        email: str,
        course_id: str,
        first_name: str = "",
        last_name: str = "",
    ) -> EnrollmentOutcome:
        """Make sure the user exists, then enroll them in the course."""
        user = await self.client.find_user_by_email(email)
        if not user:
            user = await self.client.create_user_if_not_exists(email, first_name, last_name)

        await self.client.enroll(user["id"], course_id)
        logger.info("Enrolled %s (user %s) in LearnWorlds course %s", email, user["id"], course_id)
        return EnrollmentOutcome.ENROLLED

    async def unenroll(self, email: str, course_id: str) -> EnrollmentOutcome:
        user = await self.client.find_user_by_email(email)
        if not user:
            logger.info(
                "User %s not found in LearnWorlds; nothing to unenroll from course %s",
                email, course_id,
            )
            if await self.client.test_connection():
                logger.info("LearnWorlds API reachable; user %s genuinely absent", email)
            else:
                logger.error("LearnWorlds API unreachable; lookup for %s may be wrong", email)
            return EnrollmentOutcome.USER_NOT_FOUND

        removed = await self.client.unenroll(user["id"], course_id)
        if not removed:
            logger.info("User %s was not enrolled in course %s; unenrollment not needed", email, course_id)
            return EnrollmentOutcome.NOT_ENROLLED

        logger.info("Unenrolled %s (user %s) from LearnWorlds course %s", email, user["id"], course_id)
        return EnrollmentOutcome.UNENROLLED

    async def reconcile(
        self,
        email: str,
        course_id: str,
        enrolled: bool,
        first_name: str = "",
        last_name: str = "",
    ) -> EnrollmentOutcome:
        if enrolled:
            return await self.enroll(email, course_id, first_name, last_name)
        return await self.unenroll(email, course_id)
