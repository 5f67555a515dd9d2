"""Unit tests for the review, project, report and dashboard endpoints."""

from collections.abc import Callable
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from fastapi import status
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from invoicing.database.models import Invoice, Project
from invoicing.storage.service import PresignedUrlResult, StorageResult
from tests.helpers import EMPLOYEE_ID, ORG_ID, OTHER_ORG_ID, RecordingPublisher


class TestInvoiceQueries:
    """Test listing and fetching invoices."""

    def test_list_filters_and_scope(
        self,
        client: TestClient,
        owner_headers: dict[str, str],
        make_invoice: Callable[..., Invoice],
    ) -> None:
        processed = make_invoice(status="processed")
        make_invoice(status="processing")
        make_invoice(status="processed", invoice_type="outgoing")
        make_invoice(status="processed", organization_id=OTHER_ORG_ID)

        all_rows = client.get("/api/invoices", headers=owner_headers).json()
        filtered = client.get(
            "/api/invoices",
            params={"status": "processed", "invoice_type": "incoming"},
            headers=owner_headers,
        ).json()

        assert len(all_rows) == 3
        assert [row["id"] for row in filtered] == [processed.id]

    def test_pagination_bounds(self, client: TestClient, owner_headers: dict[str, str]) -> None:
        response = client.get("/api/invoices", params={"limit": 500}, headers=owner_headers)

        assert response.status_code == 422

    def test_get_invoice(
        self,
        client: TestClient,
        owner_headers: dict[str, str],
        make_invoice: Callable[..., Invoice],
    ) -> None:
        invoice = make_invoice(status="processed", line_items='[{"description": "Paper"}]')

        response = client.get(f"/api/invoices/{invoice.id}", headers=owner_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["line_items"] == [{"description": "Paper"}]

    def test_invoice_of_other_organization_hidden(
        self,
        client: TestClient,
        owner_headers: dict[str, str],
        make_invoice: Callable[..., Invoice],
    ) -> None:
        invoice = make_invoice(organization_id=OTHER_ORG_ID)

        response = client.get(f"/api/invoices/{invoice.id}", headers=owner_headers)

        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestInvoiceReview:
    """Test edits, confirmation, sending and deletion."""

    def test_save_edits(
        self,
        client: TestClient,
        employee_headers: dict[str, str],
        make_invoice: Callable[..., Invoice],
    ) -> None:
        invoice = make_invoice(status="processed", vendor_name="Old name")

        response = client.patch(
            f"/api/invoices/{invoice.id}",
            json={"vendor_name": "New name", "total_amount": 99.9},
            headers=employee_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["vendor_name"] == "New name"
        assert data["total_amount"] == 99.9
        assert data["status"] == "processed"

    def test_null_currency_keeps_stored_value(
        self,
        client: TestClient,
        owner_headers: dict[str, str],
        make_invoice: Callable[..., Invoice],
    ) -> None:
        invoice = make_invoice(status="processed", currency="RSD")

        edited = client.patch(
            f"/api/invoices/{invoice.id}",
            json={"currency": None, "vendor_name": "Kept currency"},
            headers=owner_headers,
        )
        confirmed = client.post(
            f"/api/invoices/{invoice.id}/confirm", json={"currency": None}, headers=owner_headers
        )

        assert edited.status_code == status.HTTP_200_OK
        assert edited.json()["currency"] == "RSD"
        assert confirmed.status_code == status.HTTP_200_OK
        assert confirmed.json()["currency"] == "RSD"

    @pytest.mark.parametrize("action", ["patch", "confirm"])
    def test_project_of_other_organization_refused(
        self,
        action: str,
        client: TestClient,
        session: Session,
        owner_headers: dict[str, str],
        make_invoice: Callable[..., Invoice],
        make_project: Callable[..., Project],
    ) -> None:
        foreign = make_project(organization_id=OTHER_ORG_ID, name="Not ours")
        invoice = make_invoice(status="processed")
        body = {"project_id": foreign.id}

        if action == "patch":
            response = client.patch(f"/api/invoices/{invoice.id}", json=body, headers=owner_headers)
        else:
            response = client.post(
                f"/api/invoices/{invoice.id}/confirm", json=body, headers=owner_headers
            )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        session.expire_all()
        stored = session.get(Invoice, invoice.id)
        assert stored.project_id is None
        assert stored.status == "processed"

    def test_assign_own_project(
        self,
        client: TestClient,
        owner_headers: dict[str, str],
        make_invoice: Callable[..., Invoice],
        make_project: Callable[..., Project],
    ) -> None:
        project = make_project()
        invoice = make_invoice(status="processed")

        response = client.patch(
            f"/api/invoices/{invoice.id}", json={"project_id": project.id}, headers=owner_headers
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["project_id"] == project.id

    def test_edit_after_sending_refused(
        self,
        client: TestClient,
        owner_headers: dict[str, str],
        make_invoice: Callable[..., Invoice],
    ) -> None:
        invoice = make_invoice(status="sent_to_accountant")

        response = client.patch(
            f"/api/invoices/{invoice.id}", json={"notes": "late"}, headers=owner_headers
        )

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_confirm(
        self,
        client: TestClient,
        employee_headers: dict[str, str],
        make_invoice: Callable[..., Invoice],
        publisher: RecordingPublisher,
    ) -> None:
        invoice = make_invoice(status="processed", total_amount=Decimal("120"))

        response = client.post(
            f"/api/invoices/{invoice.id}/confirm",
            json={"invoice_number": "R-7"},
            headers=employee_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "confirmed"
        assert data["invoice_number"] == "R-7"
        assert data["confirmed_by"] == EMPLOYEE_ID
        assert data["requires_confirmation"] is False
        assert data["total_amount"] == 120.0
        assert data["subtotal"] == 0.0
        assert publisher.events[-1].old_status.value == "processed"

    def test_confirm_before_processing_finished(
        self,
        client: TestClient,
        owner_headers: dict[str, str],
        make_invoice: Callable[..., Invoice],
    ) -> None:
        invoice = make_invoice(status="processing")

        response = client.post(
            f"/api/invoices/{invoice.id}/confirm", json={}, headers=owner_headers
        )

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_send_to_accountant(
        self,
        client: TestClient,
        owner_headers: dict[str, str],
        make_invoice: Callable[..., Invoice],
    ) -> None:
        confirmed = make_invoice(status="confirmed")
        processed = make_invoice(status="processed")

        sent = client.post(f"/api/invoices/{confirmed.id}/send-to-accountant", headers=owner_headers)
        skipped = client.post(
            f"/api/invoices/{processed.id}/send-to-accountant", headers=owner_headers
        )

        assert sent.json()["status"] == "sent_to_accountant"
        assert skipped.status_code == status.HTTP_409_CONFLICT

    def test_delete_by_owner(
        self,
        client: TestClient,
        owner_headers: dict[str, str],
        make_invoice: Callable[..., Invoice],
        publisher: RecordingPublisher,
    ) -> None:
        invoice = make_invoice(status="error")

        response = client.delete(f"/api/invoices/{invoice.id}", headers=owner_headers)

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert client.get(f"/api/invoices/{invoice.id}", headers=owner_headers).status_code == 404
        assert publisher.events[-1].event_type == "DELETE"

    @pytest.mark.parametrize(
        ("headers_fixture", "invoice_status"),
        [("employee_headers", "processed"), ("owner_headers", "sent_to_accountant")],
    )
    def test_delete_refused(
        self,
        request: pytest.FixtureRequest,
        client: TestClient,
        make_invoice: Callable[..., Invoice],
        headers_fixture: str,
        invoice_status: str,
    ) -> None:
        invoice = make_invoice(status=invoice_status)
        headers = request.getfixturevalue(headers_fixture)

        response = client.delete(f"/api/invoices/{invoice.id}", headers=headers)

        assert response.status_code == status.HTTP_403_FORBIDDEN


class TestProjectsApi:
    """Test project endpoints."""

    def test_create_and_list(self, client: TestClient, owner_headers: dict[str, str]) -> None:
        created = client.post(
            "/api/projects", json={"name": " Renovation ", "code": "REN"}, headers=owner_headers
        )
        duplicate = client.post(
            "/api/projects", json={"name": "Other", "code": "REN"}, headers=owner_headers
        )
        listed = client.get("/api/projects", headers=owner_headers)

        assert created.status_code == status.HTTP_201_CREATED
        assert created.json()["name"] == "Renovation"
        assert created.json()["color"] == "#6366f1"
        assert duplicate.status_code == status.HTTP_400_BAD_REQUEST
        assert [p["code"] for p in listed.json()] == ["REN"]

    def test_detail_with_stats(
        self,
        client: TestClient,
        owner_headers: dict[str, str],
        make_project: Callable[..., Project],
        make_invoice: Callable[..., Invoice],
    ) -> None:
        project = make_project()
        make_invoice(project_id=project.id, tax_amount=Decimal("5"), total_amount=Decimal("25"))

        response = client.get(f"/api/projects/{project.id}", headers=owner_headers)

        assert response.status_code == status.HTTP_200_OK
        stats = response.json()["stats"]
        assert stats["invoice_count"] == 1
        assert stats["incoming"]["total"] == 25.0

    def test_update(
        self,
        client: TestClient,
        employee_headers: dict[str, str],
        make_project: Callable[..., Project],
    ) -> None:
        project = make_project()

        response = client.patch(
            f"/api/projects/{project.id}", json={"color": "#112233"}, headers=employee_headers
        )

        assert response.json()["color"] == "#112233"

    def test_delete_owner_only(
        self,
        client: TestClient,
        owner_headers: dict[str, str],
        employee_headers: dict[str, str],
        make_project: Callable[..., Project],
        make_invoice: Callable[..., Invoice],
    ) -> None:
        project = make_project()
        make_invoice(project_id=project.id)

        refused = client.delete(f"/api/projects/{project.id}", headers=employee_headers)
        deleted = client.delete(f"/api/projects/{project.id}", headers=owner_headers)

        assert refused.status_code == status.HTTP_403_FORBIDDEN
        assert deleted.json() == {"success": True, "deactivated": True}

    def test_unknown_project(self, client: TestClient, owner_headers: dict[str, str]) -> None:
        response = client.get("/api/projects/missing", headers=owner_headers)

        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestReportsApi:
    """Test report endpoints."""

    BODY = {
        "name": "Mart 2024",
        "type": "excel",
        "date_from": "2024-03-01",
        "date_to": "2024-03-31",
    }

    def test_generate_and_download(
        self,
        client: TestClient,
        owner_headers: dict[str, str],
        storage: MagicMock,
        make_invoice: Callable[..., Invoice],
    ) -> None:
        make_invoice(status="confirmed", invoice_date=date(2024, 3, 10))
        storage.upload_bytes.return_value = StorageResult(success=True)
        storage.get_presigned_url.return_value = PresignedUrlResult(
            success=True, url="https://files.test/signed"
        )

        created = client.post("/api/reports", json=self.BODY, headers=owner_headers)

        assert created.status_code == status.HTTP_201_CREATED
        report = created.json()
        assert report["status"] == "completed"
        assert report["file_url"] == f"{ORG_ID}/{report['id']}.xlsx"

        download = client.get(
            f"/api/reports/{report['id']}/download",
            headers=owner_headers,
            follow_redirects=False,
        )
        assert download.status_code == status.HTTP_302_FOUND
        assert download.headers["location"] == "https://files.test/signed"

        listed = client.get("/api/reports", headers=owner_headers).json()
        assert [r["id"] for r in listed] == [report["id"]]

    def test_storage_failure(
        self, client: TestClient, owner_headers: dict[str, str], storage: MagicMock
    ) -> None:
        storage.upload_bytes.return_value = StorageResult(success=False, error="bucket gone")

        response = client.post("/api/reports", json=self.BODY, headers=owner_headers)

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        report_id = response.json()["report_id"]
        listed = client.get("/api/reports", headers=owner_headers).json()
        assert [(r["id"], r["status"]) for r in listed] == [(report_id, "error")]

        download = client.get(f"/api/reports/{report_id}/download", headers=owner_headers)
        assert download.status_code == status.HTTP_400_BAD_REQUEST

    def test_invalid_period(self, client: TestClient, owner_headers: dict[str, str]) -> None:
        body = {**self.BODY, "date_from": "2024-04-01"}

        response = client.post("/api/reports", json=body, headers=owner_headers)

        assert response.status_code == 422

    def test_delete(
        self, client: TestClient, owner_headers: dict[str, str], storage: MagicMock
    ) -> None:
        storage.upload_bytes.return_value = StorageResult(success=True)
        storage.delete_object.return_value = StorageResult(success=True)
        report_id = client.post("/api/reports", json=self.BODY, headers=owner_headers).json()["id"]

        response = client.delete(f"/api/reports/{report_id}", headers=owner_headers)

        assert response.status_code == status.HTTP_204_NO_CONTENT
        storage.delete_object.assert_called_once()
        assert client.get("/api/reports", headers=owner_headers).json() == []


class TestDashboardApi:
    """Test dashboard aggregates."""

    def test_stats(
        self,
        client: TestClient,
        owner_headers: dict[str, str],
        make_invoice: Callable[..., Invoice],
    ) -> None:
        make_invoice(status="processed", total_amount=Decimal("10"))
        make_invoice(status="confirmed", total_amount=Decimal("15"))
        make_invoice(status="processed", organization_id=OTHER_ORG_ID)

        data = client.get("/api/dashboard/stats", headers=owner_headers).json()

        assert data["total_invoices"] == 2
        assert data["pending_invoices"] == 1
        assert data["total_amount"] == 25.0

    def test_pdv(
        self,
        client: TestClient,
        owner_headers: dict[str, str],
        make_invoice: Callable[..., Invoice],
    ) -> None:
        make_invoice(
            status="confirmed",
            invoice_type="outgoing",
            invoice_date=date(2024, 3, 31),
            tax_amount=Decimal("40"),
        )
        make_invoice(
            status="processed", invoice_date=date(2024, 3, 1), tax_amount=Decimal("15")
        )

        response = client.get(
            "/api/dashboard/pdv",
            params={"date_from": "2024-03-01", "date_to": "2024-03-31"},
            headers=owner_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["net_pdv"] == 25.0

    def test_pdv_period_order(self, client: TestClient, owner_headers: dict[str, str]) -> None:
        response = client.get(
            "/api/dashboard/pdv",
            params={"date_from": "2024-04-01", "date_to": "2024-03-01"},
            headers=owner_headers,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
