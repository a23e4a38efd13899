import logging
from decimal import Decimal
from unittest.mock import patch

import pytest

from errors import AuthorizationError, NetworkError, NotFoundError, UploadError, ValidationError
from identity import ANONYMOUS

from .helpers import image, run


class TestCreateProduct:
    def test_create_stores_images_and_price(self, admin_front, viper):
        stored = run(admin_front.catalog.get_product(viper.id))
        assert stored.name == "Viper Mouse"
        assert stored.price == Decimal("2500")
        assert len(stored.images) == 1
        assert stored.created_at is not None

    def test_tags_are_trimmed_and_deduplicated(self, admin_front):
        product = run(admin_front.create_product(
            {"name": "Pad", "price": "99.5", "qr_code_url": "qr://p", "tags": " rgb, mouse ,rgb,, "},
            [image()],
        ))
        assert product.tags == ["rgb", "mouse"]
        assert product.price == Decimal("99.5")

    @pytest.mark.parametrize("fields", [
        {"price": 10, "qr_code_url": "qr://x"},
        {"name": "  ", "price": 10, "qr_code_url": "qr://x"},
        {"name": "Pad", "qr_code_url": "qr://x"},
        {"name": "Pad", "price": "ten", "qr_code_url": "qr://x"},
        {"name": "Pad", "price": -1, "qr_code_url": "qr://x"},
        {"name": "Pad", "price": 10},
    ])
    def test_invalid_fields_are_rejected_before_upload(self, admin_front, blobs, fields):
        with pytest.raises(ValidationError):
            run(admin_front.create_product(fields, [image()]))
        assert blobs.blobs == {}
        assert run(admin_front.catalog.list_products()) == []

    def test_at_least_one_image_is_required(self, admin_front):
        with pytest.raises(ValidationError):
            run(admin_front.create_product({"name": "Pad", "price": 1, "qr_code_url": "qr://x"}, []))

    def test_failed_upload_persists_nothing(self, admin_front):
        with pytest.raises(UploadError):
            run(admin_front.create_product(
                {"name": "Pad", "price": 1, "qr_code_url": "qr://x"},
                [image("a.png"), image("bad.png"), image("c.png")],
            ))
        assert run(admin_front.catalog.list_products()) == []
        assert admin_front.products == []

    def test_failed_write_reports_orphaned_blobs(self, admin_front, store, caplog):
        with patch.object(store, "create_document", side_effect=NetworkError("down")):
            with caplog.at_level(logging.WARNING):
                with pytest.raises(NetworkError):
                    run(admin_front.create_product({"name": "Pad", "price": 1, "qr_code_url": "qr://x"}, [image()]))
        assert "orphaned blobs" in caplog.text


class TestUpdateProduct:
    def test_new_images_are_appended(self, admin_front):
        product = run(admin_front.create_product(
            {"name": "Keyboard", "price": 7999, "qr_code_url": "qr://k"},
            [image("1.png"), image("2.png"), image("3.png")],
        ))
        original = list(product.images)

        updated = run(admin_front.update_product(product.id, {"price": 6999}, [image("4.png"), image("5.png")]))

        assert len(updated.images) == 5
        assert updated.images[:3] == original
        assert updated.price == Decimal("6999")
        assert updated.name == "Keyboard"
        stored = run(admin_front.catalog.get_product(product.id))
        assert stored.images == updated.images
        assert stored.updated_at is not None

    def test_update_without_files_keeps_images(self, admin_front, viper):
        updated = run(admin_front.update_product(viper.id, {"description": "Lightweight"}))
        assert updated.images == viper.images
        assert updated.description == "Lightweight"

    def test_update_missing_product(self, admin_front, blobs):
        with pytest.raises(NotFoundError):
            run(admin_front.update_product("64b000000000000000000000", {"price": 1}, [image()]))
        assert blobs.blobs == {}

    def test_update_rejects_bad_price(self, admin_front, viper):
        with pytest.raises(ValidationError):
            run(admin_front.update_product(viper.id, {"price": "free"}))

    def test_fields_are_checked_before_the_product_is_read(self, admin_front, viper, store):
        with patch.object(store, "get_document", side_effect=NetworkError("down")) as read:
            with pytest.raises(ValidationError):
                run(admin_front.update_product(viper.id, {"price": "free"}))
        read.assert_not_awaited()

    def test_price_is_stored_in_plain_notation(self, admin_front, viper, store):
        run(admin_front.update_product(viper.id, {"price": "1e2"}))
        assert run(store.get_document("product", viper.id))["price"] == "100"


class TestDeleteProduct:
    def test_delete_removes_product(self, admin_front, viper):
        run(admin_front.delete_product(viper.id))
        assert run(admin_front.catalog.list_products()) == []
        with pytest.raises(NotFoundError):
            run(admin_front.catalog.get_product(viper.id))

    def test_delete_missing_product(self, admin_front):
        with pytest.raises(NotFoundError):
            run(admin_front.delete_product("nope"))


class TestCatalogAuthorization:
    @pytest.mark.parametrize("who", ["buyer", "anonymous"])
    def test_non_admin_mutations_have_no_effect(self, request, make_storefront, admin_front, viper, blobs, who):
        identity = request.getfixturevalue("buyer") if who == "buyer" else ANONYMOUS
        front = make_storefront(identity)
        uploaded_before = dict(blobs.blobs)

        with pytest.raises(AuthorizationError):
            run(front.create_product({"name": "X", "price": 1, "qr_code_url": "qr://x"}, [image()]))
        with pytest.raises(AuthorizationError):
            run(front.update_product(viper.id, {"name": "Hacked"}, [image()]))
        with pytest.raises(AuthorizationError):
            run(front.delete_product(viper.id))

        products = run(admin_front.catalog.list_products())
        assert [p.name for p in products] == ["Viper Mouse"]
        assert blobs.blobs == uploaded_before

    def test_anyone_can_browse(self, make_storefront, viper):
        front = make_storefront(ANONYMOUS)
        assert [p.id for p in run(front.refresh_products())] == [viper.id]
