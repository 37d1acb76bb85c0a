"""Tests for location reference data."""

import pytest

from portal.errors import NotFound, Unauthorized
from portal.locations.service import list_locations


class TestListLocations:
    def test_filters_by_parent(self, strapi_client, fake_strapi, student_session, null_cache):
        fake_strapi.seed("regions", name="Oromia", country=1)
        fake_strapi.seed("regions", name="Elsewhere", country=2)
        result = list_locations(strapi_client, null_cache, student_session, "regions", "1")
        assert [r["name"] for r in result["data"]] == ["Oromia"]
        assert ("filters[country][id][$eq]", "1") in fake_strapi.calls[0].params

    def test_countries_have_no_parent(self, strapi_client, fake_strapi, student_session, null_cache):
        fake_strapi.seed("countries", name="Ethiopia")
        result = list_locations(strapi_client, null_cache, student_session, "countries")
        assert result["data"][0]["name"] == "Ethiopia"

    def test_results_are_cached_per_parent(self, strapi_client, fake_strapi, student_session, dict_cache):
        fake_strapi.seed("woredas", name="Bole", zone=3)
        list_locations(strapi_client, dict_cache, student_session, "woredas", "3")
        list_locations(strapi_client, dict_cache, student_session, "woredas", "3")
        list_locations(strapi_client, dict_cache, student_session, "woredas", "4")
        assert len(fake_strapi.calls_to("GET", "woredas")) == 2
        assert "locations:woredas:3" in dict_cache.store

    def test_requires_session(self, strapi_client, null_cache):
        with pytest.raises(Unauthorized):
            list_locations(strapi_client, null_cache, None, "countries")

    def test_unknown_level(self, strapi_client, student_session, null_cache):
        with pytest.raises(NotFound):
            list_locations(strapi_client, null_cache, student_session, "planets")
