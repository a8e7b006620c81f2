"""
Tests for the privacy policy and terms and conditions documents.
"""

import pytest

from globalconnect.config import privacy_policies_collection


@pytest.mark.parametrize("path", ["/api/privacy-policy", "/api/terms-conditions"])
class TestPolicyDocuments:
    def test_missing_document(self, client, path):
        assert client.get(path).status_code == 404

    def test_save_replaces_single_document(self, client, admin, path):
        first = client.post(path, json={"content": "Version 1"}, headers=admin["headers"])
        assert first.status_code == 200
        client.post(path, json={"content": "Version 2", "effectiveDate": "2026-01-01T00:00:00Z"}, headers=admin["headers"])

        body = client.get(path).json()["data"]
        assert body["content"] == "Version 2"
        assert body["effectiveDate"] == "2026-01-01T00:00:00"

    def test_delete(self, client, admin, path):
        client.post(path, json={"content": "Version 1"}, headers=admin["headers"])
        assert client.delete(path, headers=admin["headers"]).status_code == 200
        assert client.get(path).status_code == 404
        assert client.delete(path, headers=admin["headers"]).status_code == 404

    def test_users_cannot_edit(self, client, user, path):
        assert client.post(path, json={"content": "Mine now"}, headers=user["headers"]).status_code == 403


def test_policies_are_stored_separately(client, admin):
    client.post("/api/privacy-policy", json={"content": "Privacy"}, headers=admin["headers"])
    assert privacy_policies_collection.count_documents({}) == 1
    assert client.get("/api/terms-conditions").status_code == 404
