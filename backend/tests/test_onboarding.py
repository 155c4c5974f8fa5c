import pytest

from eventskona.core.security import verify_access_token
from eventskona.utils.slug import slugify

PASSWORD = "Str0ng!Pass"


@pytest.mark.parametrize("name,expected", [
    ("My Cool Event!! 2025", "my-cool-event-2025"),
    ("  Lagos   Live  ", "lagos-live"),
    ("---Already-Slugged---", "already-slugged"),
    ("Café Nights", "caf-nights"),
    ("!!!", ""),
])
def test_slugify(name, expected):
    assert slugify(name) == expected


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def signup(client, email):
    response = client.post("/api/auth/register", json={
        "email": email,
        "password": PASSWORD,
        "firstName": "Ada",
        "lastName": "Lovelace",
    })
    return response.json()["data"]


def onboard(client, token, **body):
    return client.post("/api/auth/onboarding", json=body, headers=bearer(token))


def test_get_onboarding_returns_profile(client):
    tokens = signup(client, "ada@example.com")
    response = client.get("/api/auth/onboarding", headers=bearer(tokens["accessToken"]))
    assert response.status_code == 200
    assert response.json()["data"]["email"] == "ada@example.com"


def test_becoming_organizer_issues_tokens_with_new_role(client):
    tokens = signup(client, "ada@example.com")

    response = onboard(
        client,
        tokens["accessToken"],
        becomeOrganizer=True,
        organizerName="My Cool Event!! 2025",
        organizerWebsite="https://ada.events",
        organizerSocials={"twitter": "@ada"},
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["user"]["role"] == "ORGANIZER"
    assert data["user"]["organizerSlug"] == "my-cool-event-2025"
    assert data["user"]["organizerName"] == "My Cool Event!! 2025"
    assert data["user"]["organizerSince"] is not None
    assert data["user"]["organizerSocials"] == {"twitter": "@ada"}

    assert verify_access_token(data["accessToken"])["role"] == "ORGANIZER"

    # The refresh token minted before the role change is no longer honoured
    stale = client.post("/api/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert stale.status_code == 401
    fresh = client.post("/api/auth/refresh", json={"refreshToken": data["refreshToken"]})
    assert fresh.status_code == 200


def test_duplicate_organizer_slug_conflicts(client):
    first = signup(client, "ada@example.com")
    second = signup(client, "grace@example.com")

    assert onboard(client, first["accessToken"], becomeOrganizer=True, organizerName="My Cool Event").status_code == 200

    response = onboard(client, second["accessToken"], becomeOrganizer=True, organizerName="my cool event!!")
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "SLUG_EXISTS"

    me = client.get("/api/auth/me", headers=bearer(second["accessToken"]))
    assert me.json()["data"]["role"] == "USER"


def test_organizer_name_without_letters_or_numbers(client):
    tokens = signup(client, "ada@example.com")
    response = onboard(client, tokens["accessToken"], becomeOrganizer=True, organizerName="!!!")
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_ORGANIZER_NAME"


def test_profile_update_without_role_change_keeps_tokens(client):
    tokens = signup(client, "ada@example.com")

    response = onboard(client, tokens["accessToken"], firstName="  Augusta ", phone="+2348000000000", bio="Hi")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["accessToken"] is None
    assert data["refreshToken"] is None
    assert data["user"]["firstName"] == "Augusta"
    assert data["user"]["phone"] == "+2348000000000"
    assert data["user"]["role"] == "USER"

    refresh = client.post("/api/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert refresh.status_code == 200


def test_preferences_are_merged(client):
    tokens = signup(client, "ada@example.com")

    onboard(client, tokens["accessToken"], preferences={"categories": ["music"], "city": "Lagos"})
    response = onboard(
        client,
        tokens["accessToken"],
        preferences={"city": "Abuja"},
        payoutAccount={"bank": "GTB", "accountNumber": "0123456789"},
    )
    preferences = response.json()["data"]["user"]["preferences"]
    assert preferences == {
        "categories": ["music"],
        "city": "Abuja",
        "payoutAccount": {"bank": "GTB", "accountNumber": "0123456789"},
    }


def test_invalid_avatar_url(client):
    tokens = signup(client, "ada@example.com")
    response = onboard(client, tokens["accessToken"], avatarUrl="not a url")
    assert response.status_code == 400
    assert "avatarUrl" in response.json()["error"]["fields"]


def test_onboarding_requires_authentication(client):
    assert client.post("/api/auth/onboarding", json={}).status_code == 401
