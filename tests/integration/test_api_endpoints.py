import io

import numpy as np
from PIL import Image


def make_png_bytes(w=4, h=4, color=(128, 64, 32)) -> bytes:
    arr = np.zeros((h, w, 3), dtype=np.uint8)
    arr[:, :] = color
    img = Image.fromarray(arr)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


created = {}


def test_root_and_health(client):
    assert client.get("/").json()["service"] == "retouch-backend"
    assert client.get("/health").json() == {"status": "healthy"}


def test_requires_bearer_token(client):
    r = client.get("/edits")
    assert r.status_code == 401


def test_upload_and_list(client, auth_header):
    png = make_png_bytes(60, 40)
    files = {"file": ("sample.png", png, "image/png")}
    r = client.post("/edits/upload", headers=auth_header, files=files)
    assert r.status_code == 201, r.text
    data = r.json()
    edit = data["edit"]
    assert edit["status"] == "pending"
    assert (edit["width"], edit["height"]) == (60, 40)
    assert data["suggestions"]["natural"]
    created["edit_id"] = edit["id"]

    r2 = client.get("/edits", headers=auth_header)
    assert r2.status_code == 200
    assert any(e["id"] == created["edit_id"] for e in r2.json()["edits"])

    r3 = client.get(edit["current_image_url"])
    assert r3.status_code == 200
    assert r3.headers["content-type"] == "image/png"


def test_upload_rejects_non_image(client, auth_header):
    files = {"file": ("notes.txt", b"hello", "text/plain")}
    r = client.post("/edits/upload", headers=auth_header, files=files)
    assert r.status_code == 400


def test_adjust_then_history_and_restore(client, auth_header):
    edit_id = created["edit_id"]
    body = {"params": {"brightness": 20}, "strength": 100}
    r = client.post(f"/edits/{edit_id}/adjust", headers=auth_header, json=body)
    assert r.status_code == 202, r.text
    assert r.json()["edit"]["status"] == "processing"
    assert r.json()["base_params"]["brightness"] == 20

    # background tasks have run once the test client returns
    edit = client.get(f"/edits/{edit_id}", headers=auth_header).json()
    assert edit["status"] == "completed"
    assert edit["effect_strength"] == 100

    r2 = client.post(f"/edits/{edit_id}/adjust", headers=auth_header, json={"params": {"contrast": 5}})
    assert r2.status_code == 202

    hist = client.get(f"/edits/{edit_id}/history", headers=auth_header).json()
    assert [h["sequence"] for h in hist["history"]] == [1, 2]
    assert hist["history"][0]["params"]["brightness"] == 40

    r3 = client.post(f"/edits/{edit_id}/history/1/restore", headers=auth_header)
    assert r3.status_code == 200
    assert r3.json()["current_image_id"] == hist["history"][0]["image_id"]

    r4 = client.post(f"/edits/{edit_id}/history/9/restore", headers=auth_header)
    assert r4.status_code == 404


def test_adjust_validation_errors(client, auth_header):
    edit_id = created["edit_id"]
    r = client.post(f"/edits/{edit_id}/adjust", headers=auth_header, json={"params": {"hue": 500}})
    assert r.status_code == 400
    r = client.post(f"/edits/{edit_id}/adjust", headers=auth_header, json={})
    assert r.status_code == 400
    # JSON bodies may carry Infinity, which the float fields accept
    headers = {**auth_header, "Content-Type": "application/json"}
    r = client.post(f"/edits/{edit_id}/adjust", headers=headers, content='{"params": {"brightness": Infinity}}')
    assert r.status_code == 400
    assert client.get(f"/edits/{edit_id}", headers=auth_header).json()["status"] == "completed"


def test_generate(client, auth_header, fake_services):
    generator, _ = fake_services
    edit_id = created["edit_id"]
    calls = len(generator.generate_calls)
    body = {"prompt": "make sky dramatic", "strength": 50}
    r = client.post(f"/edits/{edit_id}/generate", headers=auth_header, json=body)
    assert r.status_code == 202, r.text

    edit = client.get(f"/edits/{edit_id}", headers=auth_header).json()
    assert edit["status"] == "completed"
    assert edit["prompt"] == "make sky dramatic"
    assert len(generator.generate_calls) == calls + 1

    img = client.get(edit["current_image_url"])
    assert Image.open(io.BytesIO(img.content)).size == (60, 40)

    r2 = client.post(f"/edits/{edit_id}/generate", headers=auth_header, json={"prompt": ""})
    assert r2.status_code == 400


def test_suggestions_rename_and_other_users(client, auth_header):
    edit_id = created["edit_id"]
    r = client.get(f"/edits/{edit_id}/suggestions", headers=auth_header)
    assert r.status_code == 200
    assert "natural" in r.json()

    r2 = client.patch(f"/edits/{edit_id}", headers=auth_header, json={"title": "Harbor"})
    assert r2.status_code == 200
    assert r2.json()["title"] == "Harbor"

    other = {"Authorization": "Bearer someone-else"}
    assert client.get(f"/edits/{edit_id}", headers=other).status_code == 404


def test_delete(client, auth_header):
    edit_id = created["edit_id"]
    edit = client.get(f"/edits/{edit_id}", headers=auth_header).json()
    r = client.delete(f"/edits/{edit_id}", headers=auth_header)
    assert r.status_code == 200
    assert r.json() == {"ok": True}
    assert client.get(f"/edits/{edit_id}", headers=auth_header).status_code == 404
    assert client.get(edit["current_image_url"]).status_code == 404
