# license_client.py: extension-side client for the license + sync API
import os
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

SERVER = os.environ.get("NOTES_LICENSE_SERVER", "http://localhost:3000").rstrip("/")
TIMEOUT = (6, 15)  # (connect, read)


def _session(retries=4, backoff_factor=0.8) -> requests.Session:
    """Return a requests session with retry on transient server errors."""
    s = requests.Session()
    retry = Retry(
        total=retries,
        connect=retries,
        read=retries,
        backoff_factor=backoff_factor,
        status_forcelist=(500, 502, 503, 504),
        allowed_methods=frozenset(["GET", "POST"]),
        raise_on_status=False,
    )
    s.mount("https://", HTTPAdapter(max_retries=retry))
    s.mount("http://", HTTPAdapter(max_retries=retry))
    return s


class LicenseClient:
    def __init__(self, server: str = SERVER, timeout=TIMEOUT, session: requests.Session = None):
        self.server = server.rstrip("/")
        self.timeout = timeout
        self.session = session or _session()

    def _call(self, method: str, path: str, **kw) -> dict:
        url = f"{self.server}{path}"
        try:
            r = self.session.request(method, url, timeout=self.timeout, **kw)
        except requests.exceptions.ConnectTimeout:
            return {"ok": False, "error": f"Connection timed out reaching {self.server}"}
        except requests.exceptions.ConnectionError as e:
            return {"ok": False, "error": f"Connection error: {e}"}
        except requests.exceptions.RequestException as e:
            return {"ok": False, "error": str(e)}
        try:
            data = r.json()
        except ValueError:
            return {"ok": False, "status": r.status_code, "error": f"bad response from {url}"}
        if not isinstance(data, dict):
            return {"ok": False, "status": r.status_code, "error": f"bad response: {data!r}"}
        data["ok"] = r.ok and data.get("success", True) is not False
        data["status_code"] = r.status_code
        return data

    def request_license(self, email: str) -> dict:
        return self._call("POST", "/api/request-license", json={"email": email})

    def verify(self, license_key: str) -> dict:
        return self._call("POST", "/api/verify-license", json={"licenseKey": license_key})

    def activate(self, license_key: str, email: str) -> dict:
        return self._call("POST", "/api/activate-license", json={"licenseKey": license_key, "email": email})

    def upload(self, license_key: str, data, data_type: str = "notes") -> dict:
        payload = {"licenseKey": license_key, "dataType": data_type, "data": data}
        return self._call("POST", "/api/sync/upload", json=payload)

    def download(self, license_key: str, data_type: str = "notes") -> dict:
        return self._call("GET", f"/api/sync/download/{license_key}", params={"dataType": data_type})
