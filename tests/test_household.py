from tests.conftest import auth_headers


ADMIN = auth_headers("admin", display_name="Admin")


class TestCouples:
    def test_anonymous_create(self, client):
        response = client.post("/api/couples/anonymous", json={"name": "Sato"})
        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["name"] == "Sato"
        assert body["data"]["id"]

    def test_name_required(self, client):
        response = client.post("/api/couples/anonymous", json={"name": "  "})
        assert response.status_code == 400
        assert response.json()["error"] == "Couple name is required"

    def test_authenticated_create_requires_token(self, client):
        assert client.post("/api/couples", json={"name": "Sato"}).status_code == 401
        response = client.post("/api/couples", json={"name": "Sato"}, headers=ADMIN)
        assert response.status_code == 201

    def test_get_update_delete(self, client):
        couple_id = client.post(
            "/api/couples", json={"name": "Sato"}, headers=ADMIN
        ).json()["data"]["id"]

        response = client.get(f"/api/couples/{couple_id}", headers=ADMIN)
        assert response.json()["data"]["name"] == "Sato"

        response = client.put(
            f"/api/couples/{couple_id}", json={"name": "Suzuki"}, headers=ADMIN
        )
        assert response.status_code == 200
        assert response.json()["data"]["name"] == "Suzuki"

        response = client.put(f"/api/couples/{couple_id}", json={}, headers=ADMIN)
        assert response.status_code == 400

        assert client.delete(f"/api/couples/{couple_id}", headers=ADMIN).status_code == 200
        response = client.get(f"/api/couples/{couple_id}", headers=ADMIN)
        assert response.status_code == 404
        assert response.json()["error"] == "Couple not found"

    def test_missing_couple(self, client):
        assert client.put(
            "/api/couples/nope", json={"name": "x"}, headers=ADMIN
        ).status_code == 404
        assert client.delete("/api/couples/nope", headers=ADMIN).status_code == 404

    def test_delete_removes_members_and_expenses(self, client, household, add_expense):
        add_expense()
        client.delete(f"/api/couples/{household.couple_id}", headers=ADMIN)

        assert client.get(f"/api/users/{household.husband_id}", headers=ADMIN).status_code == 404
        # the login is no longer linked to anything
        response = client.get("/api/expenses", headers=household.husband_headers)
        assert response.status_code == 403


class TestMembers:
    def _couple(self, client):
        return client.post("/api/couples/anonymous", json={"name": "Sato"}).json()["data"]["id"]

    def test_create_and_list(self, client):
        couple_id = self._couple(client)
        for name, role in (("Taro", "husband"), ("Hanako", "wife")):
            response = client.post(
                "/api/users",
                json={"name": name, "role": role, "coupleId": couple_id},
                headers=ADMIN,
            )
            assert response.status_code == 201
            assert response.json()["data"]["coupleId"] == couple_id

        response = client.get(f"/api/users/couple/{couple_id}", headers=ADMIN)
        members = response.json()["data"]
        assert [m["role"] for m in members] == ["husband", "wife"]

    def test_invalid_role(self, client):
        couple_id = self._couple(client)
        response = client.post(
            "/api/users",
            json={"name": "Kid", "role": "child", "coupleId": couple_id},
            headers=ADMIN,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Role must be either husband or wife"

    def test_role_taken(self, client):
        couple_id = self._couple(client)
        body = {"name": "Taro", "role": "husband", "coupleId": couple_id}
        assert client.post("/api/users", json=body, headers=ADMIN).status_code == 201
        response = client.post("/api/users", json=body, headers=ADMIN)
        assert response.status_code == 400
        assert response.json()["error"] == "Role already taken in this couple"

    def test_unknown_couple(self, client):
        response = client.post(
            "/api/users",
            json={"name": "Taro", "role": "husband", "coupleId": "missing"},
            headers=ADMIN,
        )
        assert response.status_code == 404

    def test_from_auth_uses_token_name(self, client):
        couple_id = self._couple(client)
        headers = auth_headers("g-42", display_name="Taro", email="taro@example.com")
        response = client.post(
            "/api/users/from-auth",
            json={"role": "husband", "coupleId": couple_id},
            headers=headers,
        )
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["name"] == "Taro"
        assert data["email"] == "taro@example.com"

        again = client.post(
            "/api/users/from-auth",
            json={"role": "wife", "coupleId": couple_id},
            headers=headers,
        )
        assert again.status_code == 400

    def test_from_auth_requires_role_and_couple(self, client):
        response = client.post(
            "/api/users/from-auth", json={"role": "wife"}, headers=ADMIN
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Role and coupleId are required"

    def test_from_auth_requires_display_name(self, client):
        couple_id = self._couple(client)
        response = client.post(
            "/api/users/from-auth",
            json={"role": "wife", "coupleId": couple_id},
            headers=auth_headers("g-7", display_name=""),
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Display name not found in authentication token"

    def test_update_and_delete(self, client, household):
        response = client.put(
            f"/api/users/{household.wife_id}", json={"name": "Yuki"}, headers=ADMIN
        )
        assert response.json()["data"]["name"] == "Yuki"

        assert client.delete(f"/api/users/{household.wife_id}", headers=ADMIN).status_code == 200
        assert client.get(f"/api/users/{household.wife_id}", headers=ADMIN).status_code == 404
