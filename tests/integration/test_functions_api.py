# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for the callable function endpoints."""

import pytest
from fastapi.testclient import TestClient

from simonkey.domains.kpi import KpiService, kpi_path
from simonkey.infrastructure.documents import MemoryDocumentStore

FUNCTIONS = "/api/v1/functions"


@pytest.fixture(autouse=True)
def seeded(store: MemoryDocumentStore) -> MemoryDocumentStore:
    """A personal user, a school teacher and an institution."""
    store.seed(
        {
            "users/u1": {"nombre": "Ana"},
            "users/u2": {"nombre": "Beto"},
            "notebooks/nb1": {"userId": "u1", "title": "Historia"},
            "users/t1": {"subscription": "school", "schoolRole": "teacher", "idEscuela": "inst1"},
            "schoolInstitutions/inst1": {"nombre": "Escuela Uno"},
            "schoolSubjects/mat1": {"idEscuela": "inst1", "nombre": "Matemáticas"},
            "users/s1": {"subscription": "school", "schoolRole": "student", "idEscuela": "inst1"},
            kpi_path("s1"): {"materias": {"mat1": {"scoreMateria": 20.0}}},
        }
    )
    return store


class TestAuthentication:
    """Tests for caller identification."""

    def test_missing_token(self, client: TestClient) -> None:
        """Test calls without a bearer token are rejected."""
        response = client.post(f"{FUNCTIONS}/updateUserKpis", json={"data": {}})

        assert response.status_code == 401
        assert response.json()["error"]["status"] == "UNAUTHENTICATED"

    def test_invalid_token(self, client: TestClient) -> None:
        """Test a forged token is rejected."""
        response = client.post(
            f"{FUNCTIONS}/updateUserKpis",
            json={"data": {}},
            headers={"Authorization": "Bearer forged"},
        )

        assert response.status_code == 401

    def test_unknown_function(self, client: TestClient, caller_headers) -> None:
        """Test unknown function names answer not-found."""
        response = client.post(f"{FUNCTIONS}/dropDatabase", json={"data": {}}, headers=caller_headers("u1"))

        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Function not found: dropDatabase"

    def test_request_id_is_echoed(self, client: TestClient, caller_headers) -> None:
        """Test the request id header is returned."""
        response = client.post(
            f"{FUNCTIONS}/calculateUserStats",
            json={"data": {}},
            headers={**caller_headers("u1"), "X-Request-ID": "req-42"},
        )

        assert response.headers["X-Request-ID"] == "req-42"


class TestUserKpiFunctions:
    """Tests for updateUserKpis and getUserKpis."""

    def test_update_own_kpis(self, client: TestClient, caller_headers, seeded: MemoryDocumentStore) -> None:
        """Test a caller rebuilds their own dashboard."""
        response = client.post(f"{FUNCTIONS}/updateUserKpis", json={"data": {}}, headers=caller_headers("u1"))

        assert response.status_code == 200
        result = response.json()["result"]
        assert result["success"] is True
        assert result["userId"] == "u1"
        assert result["kpis"]["global"]["totalCuadernos"] == 1
        assert kpi_path("u1") in seeded.dump()

    def test_body_is_optional(self, client: TestClient, caller_headers) -> None:
        """Test a call without a body acts on the caller."""
        response = client.post(f"{FUNCTIONS}/updateUserKpis", headers=caller_headers("u1"))

        assert response.status_code == 200
        assert response.json()["result"]["userId"] == "u1"

    def test_other_user_requires_admin(self, client: TestClient, caller_headers) -> None:
        """Test a plain caller cannot act on someone else."""
        response = client.post(
            f"{FUNCTIONS}/updateUserKpis",
            json={"data": {"userId": "u2"}},
            headers=caller_headers("u1"),
        )

        assert response.status_code == 403
        assert response.json()["error"] == {
            "status": "PERMISSION_DENIED",
            "message": "You can only access your own data",
            "details": {"field": "userId"},
        }

    def test_admin_may_target_any_user(self, client: TestClient, caller_headers) -> None:
        """Test the admin role lifts the same-user restriction."""
        response = client.post(
            f"{FUNCTIONS}/updateUserKpis",
            json={"data": {"userId": "u2"}},
            headers=caller_headers("root", role="admin"),
        )

        assert response.status_code == 200
        assert response.json()["result"]["userId"] == "u2"

    def test_missing_user(self, client: TestClient, caller_headers) -> None:
        """Test a caller without a user document gets not-found."""
        response = client.post(f"{FUNCTIONS}/updateUserKpis", json={"data": {}}, headers=caller_headers("ghost"))

        assert response.status_code == 404
        assert response.json()["error"]["message"] == "User not found: ghost"

    def test_user_id_must_be_string(self, client: TestClient, caller_headers) -> None:
        """Test malformed arguments answer invalid-argument."""
        response = client.post(
            f"{FUNCTIONS}/getUserKpis",
            json={"data": {"userId": 7}},
            headers=caller_headers("u1"),
        )

        assert response.status_code == 400
        assert response.json()["error"]["status"] == "INVALID_ARGUMENT"

    def test_get_kpis_before_update(self, client: TestClient, caller_headers) -> None:
        """Test reading a dashboard that was never built."""
        response = client.post(f"{FUNCTIONS}/getUserKpis", json={"data": {}}, headers=caller_headers("u1"))

        assert response.status_code == 404
        assert response.json()["error"]["message"] == "No KPIs found for user u1"

    def test_get_kpis_after_update(self, client: TestClient, caller_headers) -> None:
        """Test the stored dashboard is returned."""
        headers = caller_headers("u1")
        client.post(f"{FUNCTIONS}/updateUserKpis", json={"data": {}}, headers=headers)

        response = client.post(f"{FUNCTIONS}/getUserKpis", json={"data": {}}, headers=headers)

        assert response.status_code == 200
        assert "nb1" in response.json()["result"]["cuadernos"]

    def test_unexpected_failure_is_internal(
        self,
        client: TestClient,
        caller_headers,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test unexpected exceptions map to internal with the original message."""

        async def broken(self, user_id: str):
            raise RuntimeError("store exploded")

        monkeypatch.setattr(KpiService, "update_user_kpis", broken)

        response = client.post(f"{FUNCTIONS}/updateUserKpis", json={"data": {}}, headers=caller_headers("u1"))

        assert response.status_code == 500
        assert response.json()["error"] == {
            "status": "INTERNAL",
            "message": "store exploded",
            "details": {"type": "RuntimeError"},
        }


class TestTeacherKpiFunction:
    """Tests for updateTeacherKpis."""

    def test_update_own_dashboard(self, client: TestClient, caller_headers) -> None:
        """Test a teacher rebuilds their dashboard."""
        response = client.post(f"{FUNCTIONS}/updateTeacherKpis", json={"data": {}}, headers=caller_headers("t1"))

        assert response.status_code == 200
        assert response.json()["result"]["teacherId"] == "t1"

    def test_refresh_students_must_be_boolean(self, client: TestClient, caller_headers) -> None:
        """Test refreshStudents is validated."""
        response = client.post(
            f"{FUNCTIONS}/updateTeacherKpis",
            json={"data": {"refreshStudents": "yes"}},
            headers=caller_headers("t1"),
        )

        assert response.status_code == 400
        assert response.json()["error"]["details"] == {"field": "refreshStudents"}

    def test_missing_teacher(self, client: TestClient, caller_headers) -> None:
        """Test an unknown teacher answers not-found."""
        response = client.post(f"{FUNCTIONS}/updateTeacherKpis", json={"data": {}}, headers=caller_headers("t9"))

        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Teacher not found: t9"


class TestRankingFunction:
    """Tests for updateInstitutionRankings."""

    def test_institution_id_required(self, client: TestClient, caller_headers) -> None:
        """Test the institution id is mandatory."""
        response = client.post(
            f"{FUNCTIONS}/updateInstitutionRankings",
            json={"data": {}},
            headers=caller_headers("t1"),
        )

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "institutionId is required"

    def test_rank_institution(self, client: TestClient, caller_headers, seeded: MemoryDocumentStore) -> None:
        """Test an institution is ranked on demand."""
        response = client.post(
            f"{FUNCTIONS}/updateInstitutionRankings",
            json={"data": {"institutionId": "inst1"}},
            headers=caller_headers("t1"),
        )

        assert response.status_code == 200
        assert response.json()["result"] == {
            "success": True,
            "institutionId": "inst1",
            "subjectsProcessed": 1,
            "studentsRanked": 1,
        }
        assert seeded.dump()["users/s1/rankings/mat1"]["posicion"] == 1


class TestStatsFunction:
    """Tests for calculateUserStats."""

    def test_calculate_own_stats(self, client: TestClient, caller_headers) -> None:
        """Test the caller's statistics are computed."""
        response = client.post(f"{FUNCTIONS}/calculateUserStats", json={"data": {}}, headers=caller_headers("u1"))

        assert response.status_code == 200
        result = response.json()["result"]
        assert result["success"] is True
        assert result["stats"]["totalNotebooks"] == 1
        assert result["stats"]["currentStreak"] == 0
