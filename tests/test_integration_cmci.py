"""Integration tests for the CMCI resource endpoints.

Drives the HTTP surface with TestClient and checks:
- The retained result set walkthrough (create, page, discard, gone)
- Ownership, expiry and deduplication of result sets
- The query-parameter cache token flow and the legacy cache
- LtpaToken2 cookie issuance and token authentication
- XML error summaries
"""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from cmcimock import app as app_module
from cmcimock.api.wire import parse_response, record_tag
from cmcimock.service.runtime import get_runtime


ROOT = "/CICSSystemManagement"


@pytest.fixture
def client():
    return TestClient(app_module.app)


@pytest.fixture
def other_client():
    """Separate cookie jar, so requests authenticate as a different session."""
    return TestClient(app_module.app)


def _create(client, auth, resource="CICSDefinitionProgram", **params):
    response = client.get(f"{ROOT}/{resource}", params=params, headers=auth)
    assert response.status_code == 200, response.text
    summary, records = parse_response(response.content)
    return response, summary, records


class TestRetainedResultSetWalkthrough:
    def test_create_page_discard(self, client, testuser_auth):
        response, summary, records = _create(
            client, testuser_auth, count="20", NODISCARD="", SUMMONLY=""
        )
        assert response.headers["content-type"].startswith("application/xml")
        assert summary["api_response1_alt"] == "OK"
        assert summary["recordcount"] == "20"
        assert records == []
        token = summary["cachetoken"]

        page = client.get(f"{ROOT}/CICSResultCache/{token}/1/10", params={"NODISCARD": ""})
        assert page.status_code == 200
        summary, records = parse_response(page.content)
        assert len(records) == 10
        assert summary["recordcount"] == "20"
        assert summary["displayed_recordcount"] == "10"
        assert summary["cachetoken"] == token
        assert record_tag(page.content) == "cicsdefinitionprogram"
        assert records[0]["program"] == "PROG001"

        rest = client.get(f"{ROOT}/CICSResultCache/{token}")
        assert rest.status_code == 200
        summary, records = parse_response(rest.content)
        assert summary["recordcount"] == "20"
        assert summary["displayed_recordcount"] == "20"
        assert len(records) == 20
        assert "cachetoken" not in summary

        gone = client.get(f"{ROOT}/CICSResultCache/{token}")
        assert gone.status_code == 404
        summary, records = parse_response(gone.content)
        assert summary["api_response1"] == "1034"
        assert summary["api_response1_alt"] == "NOTAVAILABLE"
        assert summary["recordcount"] == "0"
        assert records == []

    def test_consecutive_pages_have_no_gaps(self, client, testuser_auth):
        _, summary, _ = _create(client, testuser_auth, count="12", SUMMONLY="")
        token = summary["cachetoken"]
        first = parse_response(
            client.get(f"{ROOT}/CICSResultCache/{token}/1/5?NODISCARD").content
        )[1]
        second = parse_response(
            client.get(f"{ROOT}/CICSResultCache/{token}/6/5?NODISCARD").content
        )[1]
        whole = parse_response(
            client.get(f"{ROOT}/CICSResultCache/{token}/1/10?nodiscard").content
        )[1]
        assert first + second == whole
        assert [r["program"] for r in whole] == [f"PROG{i:03d}" for i in range(1, 11)]

    def test_page_past_end(self, client, testuser_auth):
        _, summary, _ = _create(client, testuser_auth, count="3", SUMMONLY="")
        response = client.get(f"{ROOT}/CICSResultCache/{summary['cachetoken']}/10/5")
        assert response.status_code == 200
        summary, records = parse_response(response.content)
        assert summary["displayed_recordcount"] == "0"
        assert summary["recordcount"] == "3"
        assert records == []

    def test_order_by_field(self, client, testuser_auth):
        _, summary, _ = _create(client, testuser_auth, count="15", SUMMONLY="")
        response = client.get(
            f"{ROOT}/CICSResultCache/{summary['cachetoken']}",
            params={"orderby": "_keydata"},
        )
        values = [r["_keydata"] for r in parse_response(response.content)[1]]
        assert values == sorted(values)

    def test_summonly_on_read_omits_records(self, client, testuser_auth):
        _, summary, _ = _create(client, testuser_auth, count="4", SUMMONLY="")
        response = client.get(
            f"{ROOT}/CICSResultCache/{summary['cachetoken']}/1/2?SUMMONLY&NODISCARD"
        )
        summary, records = parse_response(response.content)
        assert summary["displayed_recordcount"] == "2"
        assert records == []

    def test_too_many_order_by_fields(self, client, testuser_auth):
        _, summary, _ = _create(client, testuser_auth, count="2", SUMMONLY="")
        fields = ",".join(f"f{i}" for i in range(33))
        response = client.get(
            f"{ROOT}/CICSResultCache/{summary['cachetoken']}", params={"orderby": fields}
        )
        assert response.status_code == 400
        assert parse_response(response.content)[0]["api_response1_alt"] == "INVALIDPARM"


class TestOwnershipAndExpiry:
    def test_other_session_is_denied(self, client, other_client, testuser_auth, adminusr_auth):
        _, summary, _ = _create(client, testuser_auth, count="5", SUMMONLY="")
        token = summary["cachetoken"]

        denied = other_client.get(f"{ROOT}/CICSResultCache/{token}", headers=adminusr_auth)
        assert denied.status_code == 403
        summary, records = parse_response(denied.content)
        assert summary["api_response1_alt"] == "NOTAVAILABLE"
        assert summary["api_response2_alt"] == "Access denied"
        assert records == []

        # The owner still has it
        owner = client.get(f"{ROOT}/CICSResultCache/{token}")
        assert owner.status_code == 200
        assert len(parse_response(owner.content)[1]) == 5

    def test_query_token_of_other_session_is_denied(
        self, client, other_client, testuser_auth, adminusr_auth
    ):
        _, summary, _ = _create(client, testuser_auth, count="5", SUMMONLY="")
        denied = other_client.get(
            f"{ROOT}/CICSProgram",
            params={"cachetoken": summary["cachetoken"]},
            headers=adminusr_auth,
        )
        assert denied.status_code == 403

    def test_expired_set_is_not_available(self, client, testuser_auth):
        _, summary, _ = _create(client, testuser_auth, count="5", SUMMONLY="")
        token = summary["cachetoken"]
        result_set = get_runtime().result_cache.get(token)
        result_set.last_accessed_at -= timedelta(minutes=16)

        response = client.get(f"{ROOT}/CICSResultCache/{token}?NODISCARD")
        assert response.status_code == 404
        assert get_runtime().result_cache.get(token) is None

    def test_identical_requests_share_a_result_set(self, client, testuser_auth):
        _, first, first_records = _create(client, testuser_auth, count="5")
        _, second, second_records = _create(client, testuser_auth, count="5")
        assert first["cachetoken"] == second["cachetoken"]
        assert first_records == second_records
        assert len(get_runtime().store.result_sets) == 1

        _, third, _ = _create(client, testuser_auth, count="6")
        assert third["cachetoken"] != first["cachetoken"]


class TestQueryCacheToken:
    def test_page_with_query_parameters(self, client, testuser_auth):
        _, summary, _ = _create(client, testuser_auth, count="10", SUMMONLY="")
        token = summary["cachetoken"]
        response = client.get(
            f"{ROOT}/CICSDefinitionProgram",
            params={"cacheToken": token, "index": "4", "count": "3", "NODISCARD": ""},
        )
        summary, records = parse_response(response.content)
        assert [r["program"] for r in records] == ["PROG004", "PROG005", "PROG006"]
        assert summary["recordcount"] == "10"
        assert summary["cachetoken"] == token

    def test_unknown_token(self, client, testuser_auth):
        response = client.get(
            f"{ROOT}/CICSProgram", params={"cachetoken": "FFFFFFFFFFFFFFFF"}, headers=testuser_auth
        )
        assert response.status_code == 404
        summary, _ = parse_response(response.content)
        assert summary["api_response2_alt"] == "Cache token not found"

    def test_legacy_cache_round_trip(self, client, testuser_auth):
        response, summary, records = _create(
            client, testuser_auth, resource="CICSRegion", count="2", cache="true"
        )
        legacy_token = summary["cachetoken"]
        assert len(records) == 2
        assert get_runtime().legacy_cache.keys() == [legacy_token]
        # Legacy caching does not create a retained result set
        assert len(get_runtime().store.result_sets) == 0

        replay = client.get(f"{ROOT}/CICSRegion", params={"cachetoken": legacy_token})
        assert replay.status_code == 200
        replay_summary, replay_records = parse_response(replay.content)
        assert replay_records == records
        assert "cachetoken" not in replay_summary
        # Legacy entries survive reads
        assert get_runtime().legacy_cache.get(legacy_token) is not None


class TestResourceRequests:
    def test_default_count_and_generic_records(self, client, testuser_auth):
        _, summary, records = _create(client, testuser_auth, resource="cicslocalfile")
        assert summary["recordcount"] == "10"
        assert records[0]["name"] == "CICSLOCALFILE1"
        assert records[0]["status"] == "ACTIVE"

    def test_context_and_scope_segments_are_ignored(self, client, testuser_auth):
        _, summary, records = _create(
            client, testuser_auth, resource="CICSManagedRegion/PLEX1/REGION1", count="1"
        )
        assert records[0]["cicsname"] == "REGION1"

    def test_simulate_nodata(self, client, testuser_auth):
        _, summary, records = _create(client, testuser_auth, simulate="nodata")
        assert summary["api_response1"] == "1027"
        assert summary["api_response1_alt"] == "NODATA"
        assert summary["api_source"] == "CICSPlex SM"
        assert summary["recordcount"] == "0"
        assert records == []
        assert len(get_runtime().store.result_sets) == 0

    def test_unknown_resource_type(self, client, testuser_auth):
        response = client.get(f"{ROOT}/NotAResource", headers=testuser_auth)
        assert response.status_code == 400
        summary, _ = parse_response(response.content)
        assert summary["api_response1"] == "1028"
        assert summary["api_response1_alt"] == "INVALIDPARM"
        assert summary["api_function"] == "GET"

    def test_unknown_resource_type_with_control_character(self, client, testuser_auth):
        response = client.get(f"{ROOT}/bad%01name", headers=testuser_auth)
        assert response.status_code == 400
        summary, _ = parse_response(response.content)
        assert summary["api_response1_alt"] == "INVALIDPARM"
        assert summary["api_response2_alt"] == "Unknown resource type bad?name"

    def test_missing_resource_type(self, client, testuser_auth):
        response = client.get(ROOT, headers=testuser_auth)
        assert response.status_code == 400

    def test_result_cache_without_token(self, client, testuser_auth):
        response = client.get(f"{ROOT}/CICSResultCache", headers=testuser_auth)
        assert response.status_code == 400
        summary, _ = parse_response(response.content)
        assert summary["api_response2_alt"] == "Use CICSResultCache/{token} format"

    def test_non_integer_count(self, client, testuser_auth):
        response = client.get(f"{ROOT}/CICSProgram", params={"count": "ten"}, headers=testuser_auth)
        assert response.status_code == 400

    @pytest.mark.parametrize("method", ["POST", "PUT", "DELETE"])
    def test_write_methods_are_acknowledged(self, client, testuser_auth, method):
        response = client.request(
            method,
            f"{ROOT}/CICSDefinitionProgram/PLEX1",
            content=b"<request/>",
            headers=testuser_auth,
        )
        assert response.status_code == 200
        summary, _ = parse_response(response.content)
        assert summary["api_function"] == method
        assert summary["api_response1_alt"] == "OK"
        assert summary["recordcount"] == "1"
        assert summary["displayed_recordcount"] == "1"

    def test_write_to_unknown_resource(self, client, testuser_auth):
        response = client.post(f"{ROOT}/Bogus", headers=testuser_auth)
        assert response.status_code == 400
        assert parse_response(response.content)[0]["api_function"] == "POST"


class TestAuthentication:
    def test_login_sets_cookie(self, client, testuser_auth):
        response, _, _ = _create(client, testuser_auth, count="1")
        cookie = response.headers["set-cookie"].lower()
        assert cookie.startswith("ltpatoken2=")
        assert "httponly" in cookie
        assert "max-age=28800" in cookie
        assert "samesite=lax" in cookie
        assert client.cookies.get("LtpaToken2")

    def test_cookie_authenticates_follow_up_requests(self, client, testuser_auth):
        _create(client, testuser_auth, count="1")
        response = client.get(f"{ROOT}/CICSRegion")
        assert response.status_code == 200
        assert "set-cookie" not in response.headers

    def test_token_header_authenticates(self, client, other_client, testuser_auth):
        _create(client, testuser_auth, count="1")
        token = client.cookies.get("LtpaToken2")
        response = other_client.get(f"{ROOT}/CICSRegion", headers={"LtpaToken2": token})
        assert response.status_code == 200

    def test_missing_credentials(self, client):
        response = client.get(f"{ROOT}/CICSRegion")
        assert response.status_code == 401
        body = response.json()
        assert body["status"] == "error"
        assert body["error"]["code"] == "unauthorized"
        assert body["error"]["message"] == "Authentication required"

    def test_invalid_credentials(self, client, wrong_password_auth):
        response = client.get(f"{ROOT}/CICSRegion", headers=wrong_password_auth)
        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid username or password"

    def test_invalid_token(self, client):
        response = client.get(f"{ROOT}/CICSRegion", headers={"LtpaToken2": "nope"})
        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid or expired LtpaToken2"

    def test_revoked_token_is_rejected(self, client, testuser_auth):
        _create(client, testuser_auth, count="1")
        assert client.delete("/admin/ltpa-tokens").status_code == 200
        # The stale cookie is still presented and takes precedence
        response = client.get(f"{ROOT}/CICSRegion", headers=testuser_auth)
        assert response.status_code == 401
        client.cookies.clear()
        response = client.get(f"{ROOT}/CICSRegion", headers=testuser_auth)
        assert response.status_code == 200

    def test_same_user_keeps_session_across_logins(self, client, other_client, testuser_auth):
        _create(client, testuser_auth, count="1")
        _create(other_client, testuser_auth, count="1")
        assert len(get_runtime().store.sessions) == 1
        assert client.cookies.get("LtpaToken2") == other_client.cookies.get("LtpaToken2")

    def test_cookie_set_even_when_request_fails(self, client, testuser_auth):
        response = client.get(
            f"{ROOT}/CICSRegion", params={"cachetoken": "0000000000000000"}, headers=testuser_auth
        )
        assert response.status_code == 404
        assert "ltpatoken2=" in response.headers["set-cookie"].lower()


class TestUnexpectedErrors:
    def test_cmci_path_reports_invaliddata(self, monkeypatch, testuser_auth):
        from cmcimock.api import routes

        def _boom(resource_type, count):
            raise RuntimeError("generator exploded")

        monkeypatch.setattr(routes, "generate_records", _boom)
        client = TestClient(app_module.app, raise_server_exceptions=False)
        response = client.get(f"{ROOT}/CICSRegion", headers=testuser_auth)
        assert response.status_code == 500
        summary, _ = parse_response(response.content)
        assert summary["api_response1"] == "1041"
        assert summary["api_response1_alt"] == "INVALIDDATA"
        assert summary["api_response2_alt"] == "generator exploded"
        assert summary["recordcount"] == "0"
