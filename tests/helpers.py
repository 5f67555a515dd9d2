"""Constants and small helpers shared by the test modules."""

from invoicing.realtime.events import ChangeEvent

ORG_ID = "org-acme"
OTHER_ORG_ID = "org-other"
OWNER_ID = "user-owner"
EMPLOYEE_ID = "user-employee"
OUTSIDER_ID = "user-outsider"
WORKFLOW_URL = "http://workflow.test/webhook/invoice-extraction"


class RecordingPublisher:
    """Collects published change events."""

    def __init__(self) -> None:
        self.events: list[ChangeEvent] = []

    def publish(self, event: ChangeEvent) -> None:
        self.events.append(event)


def auth_headers(user_id: str = OWNER_ID, organization_id: str = ORG_ID) -> dict[str, str]:
    return {
        "X-User-Id": user_id,
        "X-User-Email": f"{user_id}@acme.test",
        "X-Organization-Id": organization_id,
    }
