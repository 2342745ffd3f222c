"""旅行メンバー・招待 API のユニットテスト"""


class TestInviteFriendToTrip:
    def test_adds_member(self, api, trip_repo):
        response = api.post(
            "/api/trips/T1/members", json={"friendUid": "bob", "role": "viewer"}
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert trip_repo.trips["T1"]["roles"]["bob"] == "viewer"

    def test_non_member_is_denied(self, api):
        response = api.login("carol").post(
            "/api/trips/T1/members", json={"friendUid": "bob", "role": "editor"}
        )

        assert response.status_code == 403
        assert response.json() == {
            "detail": "Not a trip member.",
            "code": "permission-denied",
        }

    def test_owner_role_cannot_be_granted(self, api):
        response = api.post(
            "/api/trips/T1/members", json={"friendUid": "bob", "role": "owner"}
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid role."

    def test_unknown_trip(self, api):
        response = api.post(
            "/api/trips/nope/members", json={"friendUid": "bob", "role": "editor"}
        )

        assert response.status_code == 404
        assert response.json()["code"] == "not-found"


class TestEmailInviteFlow:
    def test_create_then_accept(self, api, trip_repo):
        """招待発行 → 別ユーザーが受諾 → 同じトークンで再受諾は失敗"""
        created = api.post(
            "/api/trips/T1/invites",
            json={"email": "bob@example.com", "role": "viewer", "ttlHours": 1},
        )
        assert created.status_code == 200
        body = created.json()
        assert body["ok"] is True
        assert body["inviteId"]
        token = body["token"]

        accepted = api.login("bob").post(
            "/api/trips/T1/invites/accept", json={"token": token}
        )
        assert accepted.status_code == 200
        assert trip_repo.trips["T1"]["roles"]["bob"] == "viewer"

        reused = api.login("carol").post(
            "/api/trips/T1/invites/accept", json={"token": token}
        )
        assert reused.status_code == 400
        assert reused.json() == {
            "detail": "Invite already used.",
            "code": "failed-precondition",
        }

    def test_invalid_ttl(self, api):
        response = api.post(
            "/api/trips/T1/invites",
            json={"email": "bob@example.com", "ttlHours": 0},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "invalid-argument"

    def test_unknown_token(self, api):
        response = api.login("bob").post(
            "/api/trips/T1/invites/accept", json={"token": "nope"}
        )

        assert response.status_code == 404
        assert response.json() == {"detail": "Invite not found.", "code": "not-found"}

    def test_accept_rate_limit(self, api):
        """acceptTripInvite は 10回/分を超えると 429（失敗した呼び出しも数える）"""
        api.login("bob")
        for _ in range(10):
            api.post("/api/trips/T1/invites/accept", json={"token": "nope"})

        response = api.post("/api/trips/T1/invites/accept", json={"token": "nope"})

        assert response.status_code == 429
        assert response.json()["code"] == "resource-exhausted"
