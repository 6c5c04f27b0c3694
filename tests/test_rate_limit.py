def _verify(client):
    return client.post("/api/verify-license", json={"licenseKey": "NOPE-NOPE-NOPE-NOPE"})


def test_license_endpoints_are_rate_limited(make_app):
    client = make_app(RATELIMIT_ENABLED=True, LICENSE_RATE_LIMIT="3 per minute").test_client()
    codes = [_verify(client).status_code for _ in range(4)]
    assert codes == [404, 404, 404, 429]
    assert _verify(client).get_json()["error"] == "Too many license requests"
    # sync endpoints only carry the global default
    assert client.get("/api/sync/download/NOPE-NOPE-NOPE-NOPE").status_code == 403


def test_each_app_keeps_its_own_limiter(make_app):
    limited = make_app(RATELIMIT_ENABLED=True, LICENSE_RATE_LIMIT="2 per minute").test_client()
    assert [_verify(limited).status_code for _ in range(3)] == [404, 404, 429]

    fresh = make_app(RATELIMIT_ENABLED=True, LICENSE_RATE_LIMIT="2 per minute").test_client()
    assert _verify(fresh).status_code == 404
    unlimited = make_app(RATELIMIT_ENABLED=False).test_client()
    assert all(_verify(unlimited).status_code == 404 for _ in range(5))

    # building other apps left the first one's limiter untouched
    assert _verify(limited).status_code == 429


def test_webhook_is_not_rate_limited(make_app):
    client = make_app(RATELIMIT_ENABLED=True, RATELIMIT_DEFAULT="2 per minute",
                      STRIPE_WEBHOOK_SECRET="").test_client()
    assert all(client.post("/webhook", data=b"{}").status_code == 200 for _ in range(4))
