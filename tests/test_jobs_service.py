"""Tests for job postings."""

import pytest

from portal.errors import BadRequest, Forbidden, NotFound, Unauthorized
from portal.jobs.service import create_job, get_jobs, list_categories, update_job
from portal.slugs import slugify

JOB = {"title": "Senior Go Engineer!", "description": "Build things", "deadline": "2026-12-01"}


class TestSlugify:
    def test_slugify(self):
        assert slugify("Senior Go Engineer!") == "senior-go-engineer"
        assert slugify("  --Data & ML-- ") == "data-ml"


class TestCreateJob:
    def test_defaults_and_owner(self, strapi_client, fake_strapi, employer_session):
        create_job(strapi_client, employer_session, JOB)
        job = fake_strapi.records("jobs")[0]
        assert job["slug"] == "senior-go-engineer"
        assert job["workplaceType"] == "On Site"
        assert job["experience"] == "Entry"
        assert job["isFeatured"] is False
        assert job["approvalStatus"] == "Pending"
        assert job["user"] == 55

    def test_required_fields(self, strapi_client, employer_session):
        with pytest.raises(BadRequest):
            create_job(strapi_client, employer_session, {"title": "x"})

    def test_employers_only(self, strapi_client, candidate_session):
        with pytest.raises(Forbidden):
            create_job(strapi_client, candidate_session, JOB)
        with pytest.raises(Unauthorized):
            create_job(strapi_client, None, JOB)

    def test_salary_is_deduplicated(self, strapi_client, fake_strapi, employer_session):
        salary = {"min": 1000, "max": None, "isNegotiable": False}
        create_job(strapi_client, employer_session, {**JOB, "salary": salary})
        create_job(strapi_client, employer_session, {**JOB, "title": "Other", "salary": salary})

        salaries = fake_strapi.records("salaries")
        assert len(salaries) == 1
        assert salaries[0]["currency"] == "ETB"
        assert [job["salary"] for job in fake_strapi.records("jobs")] == [salaries[0]["id"]] * 2

    def test_zero_minimum_is_kept(self, strapi_client, fake_strapi, employer_session):
        salary = {"min": 0, "max": 500, "currency": "USD"}
        create_job(strapi_client, employer_session, {**JOB, "salary": salary})
        create_job(strapi_client, employer_session, {**JOB, "title": "Other", "salary": salary})

        salaries = fake_strapi.records("salaries")
        assert len(salaries) == 1
        assert salaries[0]["min"] == 0
        assert ("filters[min][$eq]", "0") in fake_strapi.calls_to("GET", "salaries")[0].params

    def test_categories_passed_through(self, strapi_client, fake_strapi, employer_session):
        create_job(strapi_client, employer_session, {**JOB, "categories": [1, 2]})
        assert fake_strapi.records("jobs")[0]["categories"] == [1, 2]


class TestUpdateJob:
    def test_owner_updates_present_fields(self, strapi_client, fake_strapi, employer_session):
        job = fake_strapi.seed("jobs", title="Old", slug="old", description="keep", user=55)
        update_job(strapi_client, employer_session, {"id": job["id"], "title": "New Title"})
        assert job["slug"] == "new-title"
        assert job["description"] == "keep"
        sent = fake_strapi.writes("PUT")[0].json["data"]
        assert set(sent) == {"title", "slug"}

    def test_other_employers_job(self, strapi_client, fake_strapi, employer_session):
        job = fake_strapi.seed("jobs", title="Old", user=99)
        with pytest.raises(Forbidden):
            update_job(strapi_client, employer_session, {"id": job["id"], "title": "Mine now"})
        assert fake_strapi.writes() == []

    def test_missing_job(self, strapi_client, employer_session):
        with pytest.raises(NotFound):
            update_job(strapi_client, employer_session, {"id": 404, "title": "x"})

    def test_requires_id(self, strapi_client, employer_session):
        with pytest.raises(BadRequest):
            update_job(strapi_client, employer_session, {"title": "x"})

    def test_rejects_path_like_id(self, strapi_client, fake_strapi, employer_session):
        with pytest.raises(BadRequest):
            update_job(strapi_client, employer_session, {"id": "../users/1", "title": "x"})
        assert fake_strapi.calls == []


class TestReadJobs:
    def test_employer_sees_own_jobs(self, strapi_client, fake_strapi, employer_session):
        fake_strapi.seed("jobs", title="Mine", user=55)
        fake_strapi.seed("jobs", title="Theirs", user=99)
        result = get_jobs(strapi_client, employer_session)
        assert [job["title"] for job in result["data"]] == ["Mine"]

    def test_public_listing(self, strapi_client, fake_strapi):
        fake_strapi.seed("jobs", title="Mine", user=55)
        fake_strapi.seed("jobs", title="Theirs", user=99)
        assert len(get_jobs(strapi_client, None)["data"]) == 2

    def test_single_job_needs_employer(self, strapi_client, fake_strapi, candidate_session):
        job = fake_strapi.seed("jobs", title="Mine", user=55)
        with pytest.raises(Unauthorized):
            get_jobs(strapi_client, candidate_session, str(job["id"]))

    def test_single_job_rejects_path_like_id(self, strapi_client, fake_strapi, employer_session):
        with pytest.raises(BadRequest):
            get_jobs(strapi_client, employer_session, "../users/1")
        assert fake_strapi.calls == []

    def test_categories_are_cached(self, strapi_client, fake_strapi, dict_cache):
        fake_strapi.seed("categories", name="Engineering")
        first = list_categories(strapi_client, dict_cache)
        second = list_categories(strapi_client, dict_cache)
        assert first == second
        assert first["data"][0]["name"] == "Engineering"
        assert len(fake_strapi.calls_to("GET", "categories")) == 1
