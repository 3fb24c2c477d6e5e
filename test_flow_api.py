"""
End-to-end tests for the verification flow endpoints.
Run with: pytest test_flow_api.py
"""

from authcode.models.user import Account
from authcode.utils.password import verify_password

NEW_PASSWORD = "N3w$ecret!"


def _start_reset(client, email="jane.doe@example.com"):
    return client.post("/auth/flows/start", json={"purpose": "password_reset", "email": email})


def test_health(client):
    response = client.get("/api/health/")
    assert response.status_code == 200
    assert response.json()["database"]["status"] == "connected"


def test_password_reset_journey(client, delivery, account, db_session):
    response = _start_reset(client)
    assert response.status_code == 200
    body = response.json()
    assert body["step"] == "present_challenge"
    assert body["next_steps"] == "submit_code"
    flow_id = body["flow_id"]

    response = client.post("/auth/flows/submit-code", json={"flow_id": flow_id, "code": delivery.last_code})
    assert response.status_code == 200
    assert response.json()["step"] == "perform_action"

    response = client.post("/auth/flows/complete", json={
        "flow_id": flow_id,
        "new_password": NEW_PASSWORD,
        "confirm_password": NEW_PASSWORD,
    })
    assert response.status_code == 200
    assert response.json()["redirect_to"] == "/signin"

    db_session.refresh(account)
    assert verify_password(NEW_PASSWORD, account.hashed_password)


def test_unknown_email_gets_generic_failure(client, delivery, account):
    response = _start_reset(client, "nobody@example.com")
    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["message"] == "We could not proceed with this request."
    assert "flow_id" in detail
    assert delivery.sent == []


def test_invalid_purpose_is_rejected(client):
    response = client.post("/auth/flows/start", json={"purpose": "login", "email": "jane.doe@example.com"})
    assert response.status_code == 422


def test_code_shape_is_checked_locally(client, account):
    flow_id = _start_reset(client).json()["flow_id"]
    response = client.post("/auth/flows/submit-code", json={"flow_id": flow_id, "code": "12ab"})
    assert response.status_code == 400
    assert response.json()["detail"]["message"] == "Code must be 6 digits."


def test_wrong_code_and_replay_share_one_message(client, delivery, account):
    flow_id = _start_reset(client).json()["flow_id"]
    code = delivery.last_code
    wrong = "000000" if code != "000000" else "111111"

    response = client.post("/auth/flows/submit-code", json={"flow_id": flow_id, "code": wrong})
    assert response.status_code == 400
    assert response.json()["detail"]["message"] == "Invalid or expired verification code"
    assert "attempt" not in response.text.lower()

    assert client.post("/auth/flows/submit-code", json={"flow_id": flow_id, "code": code}).status_code == 200
    # Flow has moved on; the same code cannot be submitted again
    response = client.post("/auth/flows/submit-code", json={"flow_id": flow_id, "code": code})
    assert response.status_code == 409


def test_resend_cooldown_is_enforced_server_side(client, delivery, account, clock):
    flow_id = _start_reset(client).json()["flow_id"]

    response = client.post("/auth/flows/resend", json={"flow_id": flow_id})
    assert response.status_code == 429
    assert response.headers["Retry-After"] == "30"
    assert response.json()["detail"]["retry_after_seconds"] == 30
    assert len(delivery.sent) == 1

    clock.advance(seconds=30)
    response = client.post("/auth/flows/resend", json={"flow_id": flow_id})
    assert response.status_code == 200
    assert len(delivery.sent) == 2


def test_delivery_failure_is_reported(client, delivery, account):
    delivery.fail = True
    response = _start_reset(client)
    assert response.status_code == 502
    assert response.json()["detail"]["message"] == "We could not send the verification email. Please try again."


def test_signup_journey(client, delivery, db_session):
    response = client.post("/auth/signup", json={
        "email": "New.User@example.com",
        "password": "Sup3r$ecret",
        "confirm_password": "Sup3r$ecret",
    })
    assert response.status_code == 200
    body = response.json()
    assert body["step"] == "present_challenge"
    address, purpose, code = delivery.sent[-1]
    assert address == "new.user@example.com"

    response = client.post("/auth/flows/submit-code", json={"flow_id": body["flow_id"], "code": code})
    assert response.status_code == 200

    response = client.post("/auth/flows/complete", json={"flow_id": body["flow_id"]})
    assert response.status_code == 200

    account = db_session.query(Account).filter_by(email="new.user@example.com").one()
    assert account.email_confirmed is True
    assert delivery.welcomed == ["new.user@example.com"]


def test_signup_rejects_weak_password(client, delivery):
    response = client.post("/auth/signup", json={
        "email": "weak@example.com",
        "password": "password",
        "confirm_password": "password",
    })
    assert response.status_code == 400
    assert delivery.sent == []


def test_signup_twice_for_confirmed_account_conflicts(client, account, db_session):
    account.email_confirmed = True
    db_session.commit()
    response = client.post("/auth/signup", json={
        "email": "jane.doe@example.com",
        "password": "Sup3r$ecret",
        "confirm_password": "Sup3r$ecret",
    })
    assert response.status_code == 409


def test_unknown_flow_is_generic(client):
    response = client.post("/auth/flows/resend", json={"flow_id": "nope"})
    assert response.status_code == 400
    assert response.json()["detail"]["message"] == "This request has expired. Please start again."


def test_repeated_signup_replaces_unconfirmed_password(client, delivery, db_session):
    first_password = "F1rst$ignup"
    second_password = "S3cond$ignup"
    for password in (first_password, second_password):
        response = client.post("/auth/signup", json={
            "email": "owner@example.com",
            "password": password,
            "confirm_password": password,
        })
        assert response.status_code == 200
    flow_id = response.json()["flow_id"]

    response = client.post("/auth/flows/submit-code", json={"flow_id": flow_id, "code": delivery.last_code})
    assert response.status_code == 200
    assert client.post("/auth/flows/complete", json={"flow_id": flow_id}).status_code == 200

    account = db_session.query(Account).filter_by(email="owner@example.com").one()
    db_session.refresh(account)
    assert account.email_confirmed is True
    assert verify_password(second_password, account.hashed_password)
    assert not verify_password(first_password, account.hashed_password)
