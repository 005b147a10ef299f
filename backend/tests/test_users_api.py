from dropshare.core.config import settings

API = settings.API_V1_STR


def register(client, username, password="password123"):
    return client.post(
        f"{API}/users/",
        json={"username": username, "email": f"{username}@example.com", "password": password},
    )


class TestRegistration:
    def test_first_user_becomes_admin(self, client):
        first = register(client, "alice")
        second = register(client, "bob")
        assert first.status_code == 200
        assert first.json()["is_admin"] is True
        assert second.json()["is_admin"] is False

    def test_duplicate_username_rejected(self, client):
        register(client, "alice")
        response = register(client, "alice")
        assert response.status_code == 400

    def test_short_password_rejected(self, client):
        assert register(client, "alice", password="short").status_code == 422


class TestLogin:
    def test_login_with_username_or_email(self, client):
        register(client, "alice")
        for login in ("alice", "alice@example.com"):
            response = client.post(
                f"{API}/login/access-token", data={"username": login, "password": "password123"}
            )
            assert response.status_code == 200
            token = response.json()["access_token"]
            me = client.get(f"{API}/users/me", headers={"Authorization": f"Bearer {token}"})
            assert me.json()["username"] == "alice"

    def test_wrong_password(self, client):
        register(client, "alice")
        response = client.post(f"{API}/login/access-token", data={"username": "alice", "password": "nope-nope"})
        assert response.status_code == 400

    def test_me_requires_token(self, client):
        assert client.get(f"{API}/users/me").status_code == 401


class TestUsage:
    def test_usage_snapshot(self, client, make_user, make_file, headers_for):
        user = make_user(storage_limit=1000)
        make_file(user, content=b"a" * 100)
        response = client.get(f"{API}/users/me/usage", headers=headers_for(user))
        assert response.status_code == 200
        assert response.json() == {
            "used": 100, "limit": 1000, "remaining": 900, "percentage": 10, "source": "account",
        }


class TestAdmin:
    def test_admin_updates_storage_limit(self, client, make_user, headers_for):
        admin = make_user(is_admin=True)
        user = make_user()
        response = client.put(
            f"{API}/users/{user.id}", json={"storage_limit": 42}, headers=headers_for(admin)
        )
        assert response.status_code == 200
        assert response.json()["storage_limit"] == 42

    def test_non_admin_cannot_list_users(self, client, make_user, headers_for):
        user = make_user()
        assert client.get(f"{API}/users/", headers=headers_for(user)).status_code == 400


class TestAccount:
    def test_update_profile_merges_preferences(self, client, make_user, headers_for):
        headers = headers_for(make_user())
        first = client.put(
            f"{API}/users/profile",
            json={"full_name": "Ada Lovelace", "preferences": {"theme": "dark"}},
            headers=headers,
        )
        assert first.status_code == 200

        second = client.put(f"{API}/users/profile", json={"bio": "engines", "preferences": {"lang": "en"}}, headers=headers)
        body = second.json()
        assert body["full_name"] == "Ada Lovelace"
        assert body["bio"] == "engines"
        assert body["preferences"] == {"theme": "dark", "lang": "en"}

    def test_profile_validation(self, client, make_user, headers_for):
        headers = headers_for(make_user())
        assert client.put(f"{API}/users/profile", json={"full_name": "A"}, headers=headers).status_code == 422
        assert client.put(f"{API}/users/profile", json={"bio": "x" * 501}, headers=headers).status_code == 422

    def test_change_password(self, client, make_user, headers_for):
        user = make_user("carol", password="password123")
        headers = headers_for(user)
        response = client.post(
            f"{API}/users/change-password",
            json={"current_password": "password123", "new_password": "correct-horse"},
            headers=headers,
        )
        assert response.status_code == 200

        login = f"{API}/login/access-token"
        assert client.post(login, data={"username": "carol", "password": "password123"}).status_code == 400
        assert client.post(login, data={"username": "carol", "password": "correct-horse"}).status_code == 200

    def test_change_password_needs_current_password(self, client, make_user, headers_for):
        headers = headers_for(make_user(password="password123"))
        response = client.post(
            f"{API}/users/change-password",
            json={"current_password": "wrong-one", "new_password": "correct-horse"},
            headers=headers,
        )
        assert response.status_code == 400
