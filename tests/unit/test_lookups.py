# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for relational lookups shared by the services."""

import asyncio

import pytest

from simonkey.domains.kpi.lookups import (
    bounded_gather,
    direct_institution,
    is_school_student,
    notebook_subject,
    resolve_institution,
    school_students,
    school_teachers,
    user_display_name,
)
from simonkey.infrastructure.documents import MemoryDocumentStore


class TestDocumentFields:
    """Tests for field precedence helpers."""

    def test_notebook_subject_precedence(self) -> None:
        """Test idMateria wins over materiaId and subjectId."""
        assert notebook_subject({"idMateria": "a", "materiaId": "b", "subjectId": "c"}) == "a"
        assert notebook_subject({"materiaId": "b", "subjectId": "c"}) == "b"
        assert notebook_subject({"subjectId": "c"}) == "c"
        assert notebook_subject({}) is None
        assert notebook_subject(None) is None

    def test_direct_institution(self) -> None:
        """Test idEscuela, idInstitucion and schoolData.idEscuela."""
        assert direct_institution({"idEscuela": "i1", "idInstitucion": "i2"}) == "i1"
        assert direct_institution({"idInstitucion": "i2"}) == "i2"
        assert direct_institution({"schoolData": {"idEscuela": "i3"}}) == "i3"
        assert direct_institution({"idAdmin": "a1"}) is None

    def test_school_student_role(self) -> None:
        """Test the school student predicate needs the school subscription."""
        assert is_school_student({"subscription": "school", "schoolRole": "student"})
        assert not is_school_student({"subscription": "free", "schoolRole": "student"})

    def test_user_display_name_fallbacks(self) -> None:
        """Test nombre, displayName, email, then the fallback."""
        assert user_display_name({"nombre": "Ana", "email": "a@x"}, "u1") == "Ana"
        assert user_display_name({"displayName": "Beto"}, "u1") == "Beto"
        assert user_display_name({"email": "c@x"}, "u1") == "c@x"
        assert user_display_name({}, "u1") == "u1"


class TestResolveInstitution:
    """Tests for institution resolution through the school admin."""

    @pytest.mark.asyncio
    async def test_direct_field_wins(self, store: MemoryDocumentStore) -> None:
        """Test that no admin lookup happens when the user has a school."""
        assert await resolve_institution(store, {"idEscuela": "i1", "idAdmin": "a1"}) == "i1"

    @pytest.mark.asyncio
    async def test_admin_probed_in_collection_order(self, store: MemoryDocumentStore) -> None:
        """Test users is probed before schoolAdmins and schoolUsers."""
        store.seed(
            {
                "schoolAdmins/a1": {"idEscuela": "from-admins"},
                "schoolUsers/a1": {"idEscuela": "from-school-users"},
            }
        )

        assert await resolve_institution(store, {"idAdmin": "a1"}) == "from-admins"

        store.seed({"users/a1": {"idInstitucion": "from-users"}})

        assert await resolve_institution(store, {"idAdmin": "a1"}) == "from-users"

    @pytest.mark.asyncio
    async def test_unresolvable(self, store: MemoryDocumentStore) -> None:
        """Test None when neither the user nor an admin names a school."""
        assert await resolve_institution(store, {"idAdmin": "missing"}) is None
        assert await resolve_institution(store, {}) is None

        store.seed({"users/a2": {"nombre": "Admin sin escuela"}})

        assert await resolve_institution(store, {"idAdmin": "a2"}) is None


class TestSchoolMembers:
    """Tests for listing school students and teachers."""

    @pytest.mark.asyncio
    async def test_filter_by_any_institution_field(self, store: MemoryDocumentStore) -> None:
        """Test membership matches any direct institution field."""
        store.seed(
            {
                "users/s1": {"subscription": "school", "schoolRole": "student", "idEscuela": "i1"},
                "users/s2": {"subscription": "school", "schoolRole": "student", "idInstitucion": "i1"},
                "users/s3": {"subscription": "school", "schoolRole": "student", "idEscuela": "i2"},
                "users/t1": {"subscription": "school", "schoolRole": "teacher", "idEscuela": "i1"},
            }
        )

        in_school = await school_students(store, "i1")
        everyone = await school_students(store)

        assert [s.id for s in in_school] == ["s1", "s2"]
        assert [s.id for s in everyone] == ["s1", "s2", "s3"]

    @pytest.mark.asyncio
    async def test_teachers_need_school_subscription(self, store: MemoryDocumentStore) -> None:
        """Test only school-subscribed teachers are listed."""
        store.seed(
            {
                "users/t1": {"subscription": "school", "schoolRole": "teacher"},
                "users/t2": {"subscription": "free", "schoolRole": "teacher"},
                "users/s1": {"subscription": "school", "schoolRole": "student"},
            }
        )

        teachers = await school_teachers(store)

        assert [t.id for t in teachers] == ["t1"]


class TestBoundedGather:
    """Tests for bounded concurrency."""

    @pytest.mark.asyncio
    async def test_limit_and_order(self) -> None:
        """Test results keep input order and concurrency stays bounded."""
        in_flight = 0
        peak = 0

        async def work(value: int) -> int:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1
            return value * 2

        result = await bounded_gather(2, (work(i) for i in range(6)))

        assert result == [0, 2, 4, 6, 8, 10]
        assert peak <= 2
