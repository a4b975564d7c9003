import pytest

from conftest import auth_headers
from modules.user.models import UserRole


@pytest.fixture
def staff_headers(make_user):
    return auth_headers(make_user(role=UserRole.ADMIN))


@pytest.fixture
def catalog(client, staff_headers):
    """Footwear > Sneakers, one brand, two products with variants."""
    footwear = client.post("/admin/categories", json={"name": "Footwear"}, headers=staff_headers).json()
    sneakers = client.post("/admin/categories", json={"name": "Sneakers", "parentId": footwear["id"]},
                           headers=staff_headers).json()
    nike = client.post("/admin/brands", json={"name": "Nike"}, headers=staff_headers).json()

    air_max = client.post("/admin/products", json={
        "name": "Air Max 90", "price": "149.99", "gender": "UNISEX",
        "categoryId": sneakers["id"], "brandId": nike["id"], "isFeatured": True,
    }, headers=staff_headers).json()
    boots = client.post("/admin/products", json={
        "name": "Leather Boots", "price": "69.95", "gender": "FEMALE", "categoryId": footwear["id"],
    }, headers=staff_headers).json()

    client.post(f"/admin/products/{air_max['id']}/variants", json={"sku": "AM90-42", "size": "42", "stock": 3},
                headers=staff_headers)
    return {"footwear": footwear, "sneakers": sneakers, "nike": nike, "air_max": air_max, "boots": boots}


def test_admin_routes_require_catalog_capability(client, make_user):
    customer = make_user()
    resp = client.post("/admin/categories", json={"name": "Hats"}, headers=auth_headers(customer))
    assert resp.status_code == 403
    assert client.post("/admin/categories", json={"name": "Hats"}).status_code == 401


def test_slugs_and_public_reads(client, catalog):
    assert catalog["air_max"]["slug"] == "air-max-90"

    product = client.get("/products/air-max-90").json()
    assert product["price"] == "149.99"
    assert product["brand"]["slug"] == "nike"
    assert [(v["sku"], v["stock"], v["price"]) for v in product["variants"]] == [("AM90-42", 3, "149.99")]

    footwear = client.get(f"/categories/{catalog['footwear']['id']}").json()
    assert [c["slug"] for c in footwear["children"]] == ["sneakers"]
    assert client.get("/products/nope").status_code == 404


def test_product_list_filters(client, catalog):
    featured = client.get("/products", params={"featured": "true"}).json()
    assert [p["slug"] for p in featured["data"]] == ["air-max-90"]
    by_brand = client.get("/products", params={"brand_id": catalog["nike"]["id"]}).json()
    assert by_brand["total"] == 1


def test_search(client, catalog):
    assert client.get("/search").status_code == 400
    assert client.get("/search", params={"q": "  "}).status_code == 400

    # Category filter includes sub-categories
    resp = client.get("/search", params={"q": "a", "category_slug": "footwear"}).json()
    assert {p["slug"] for p in resp["data"]} == {"air-max-90", "leather-boots"}

    resp = client.get("/search", params={"q": "boots", "gender": "FEMALE"}).json()
    assert [p["slug"] for p in resp["data"]] == ["leather-boots"]

    resp = client.get("/search", params={"q": "a", "max_price": "100"}).json()
    assert [p["slug"] for p in resp["data"]] == ["leather-boots"]
    assert resp["query"] == "a"


def test_duplicates_and_missing_references(client, catalog, staff_headers):
    assert client.post("/admin/brands", json={"name": "Nike"}, headers=staff_headers).status_code == 409
    resp = client.post(f"/admin/products/{catalog['boots']['id']}/variants",
                       json={"sku": "AM90-42", "size": "38"}, headers=staff_headers)
    assert resp.status_code == 409
    resp = client.post(f"/admin/products/{catalog['air_max']['id']}/variants",
                       json={"sku": "AM90-42B", "size": "42"}, headers=staff_headers)
    assert resp.status_code == 409

    resp = client.post("/admin/products", json={"name": "Ghost Shoe", "categoryId": 9999}, headers=staff_headers)
    assert resp.status_code == 404
    assert client.post("/admin/products/9999/variants", json={"sku": "X-1", "size": "M", "price": "1.00"},
                       headers=staff_headers).status_code == 404


def test_unknown_body_keys_rejected(client, staff_headers):
    resp = client.post("/admin/brands", json={"name": "Puma", "rating": 5}, headers=staff_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Validation failed"


def test_primary_image_promotion(client, catalog, staff_headers):
    pid = catalog["boots"]["id"]
    first = client.post(f"/admin/products/{pid}/images", json={"imageUrl": "https://img.test/1.jpg"},
                        headers=staff_headers).json()
    second = client.post(f"/admin/products/{pid}/images", json={"imageUrl": "https://img.test/2.jpg"},
                         headers=staff_headers).json()
    assert first["is_primary"] is True
    assert second["is_primary"] is False

    assert client.put(f"/admin/images/{second['id']}/primary", headers=staff_headers).json()["is_primary"] is True
    assert client.get("/products/leather-boots").json()["primary_image_url"] == "https://img.test/2.jpg"

    assert client.delete(f"/admin/images/{second['id']}", headers=staff_headers).status_code == 204
    assert client.get("/products/leather-boots").json()["primary_image_url"] == "https://img.test/1.jpg"


def test_update_and_delete_product(client, catalog, staff_headers):
    pid = catalog["boots"]["id"]
    resp = client.put(f"/admin/products/{pid}", json={"isActive": False}, headers=staff_headers)
    assert resp.status_code == 200
    assert client.get("/products/leather-boots").status_code == 404

    assert client.delete(f"/admin/products/{pid}", headers=staff_headers).status_code == 204
    assert client.put(f"/admin/products/{pid}", json={"isNew": True}, headers=staff_headers).status_code == 404
