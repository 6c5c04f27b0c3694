from urllib.parse import urlsplit

import pytest
import requests
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict

from license_client import LicenseClient


class FlaskAdapter(BaseAdapter):
    """Routes requests calls into a Flask test client."""

    def __init__(self, flask_client):
        super().__init__()
        self.flask_client = flask_client

    def send(self, request, **kwargs):
        url = urlsplit(request.url)
        headers = {k: v for k, v in request.headers.items() if k.lower() == "content-type"}
        resp = self.flask_client.open(url.path, method=request.method, query_string=url.query,
                                      data=request.body, headers=headers)
        r = requests.Response()
        r.status_code = resp.status_code
        r._content = resp.get_data()
        r.headers = CaseInsensitiveDict(resp.headers)
        r.url = request.url
        r.request = request
        return r

    def close(self):
        pass


class DownAdapter(BaseAdapter):
    def send(self, request, **kwargs):
        raise requests.exceptions.ConnectionError("refused")

    def close(self):
        pass


@pytest.fixture
def api(client):
    s = requests.Session()
    s.mount("http://", FlaskAdapter(client))
    return LicenseClient("http://license.test", session=s)


def test_client_license_and_sync(api):
    got = api.request_license("c@x.com")
    assert got["ok"] is True
    key = got["licenseKey"]
    assert api.verify(key)["valid"] is True
    assert api.download(key)["data"] is None
    assert api.upload(key, {"notes": ["a"]})["ok"] is True
    assert api.download(key)["data"] == {"notes": ["a"]}


def test_client_reports_errors(api):
    bad = api.verify("NOPE-NOPE-NOPE-NOPE")
    assert bad["ok"] is False
    assert bad["status_code"] == 404
    assert api.activate("ABCD-EFGH-IJKL-MNOP", "c@x.com")["ok"] is True
    assert api.activate("ABCD-EFGH-IJKL-MNOP", "c@x.com")["status_code"] == 409


def test_client_connection_error():
    s = requests.Session()
    s.mount("http://", DownAdapter())
    out = LicenseClient("http://license.test", session=s).verify("X")
    assert out["ok"] is False
    assert "Connection error" in out["error"]
