"""Tests for the JSON-file cart and seen-order repositories."""

import json

from rxquote.domain.model.cart import Cart, CartItem
from rxquote.domain.model.value_objects import Money, Quantity
from rxquote.infrastructure.persistence.json_cart_repository import JsonCartRepository
from rxquote.infrastructure.persistence.json_seen_order_repository import (
    JsonSeenOrderRepository,
)


def _item(medicine_id: str, pharmacy_id: str = "P") -> CartItem:
    return CartItem(
        medicine_id=medicine_id,
        pharmacy_id=pharmacy_id,
        name="Paracetamol",
        price=Money.of("20.00"),
        brand="Crocin",
    )


class TestJsonCartRepository:

    def test_missing_file_gives_empty_cart(self, tmp_path):
        repo = JsonCartRepository(tmp_path / "data" / "cart.json")
        assert repo.load().is_empty
        assert (tmp_path / "data" / "cart.json").exists()

    def test_cart_and_binding_survive_reload(self, tmp_path):
        path = tmp_path / "cart.json"
        cart = Cart()
        cart.add_item(_item("m1"))
        cart.add_item(_item("m1"))
        JsonCartRepository(path).save(cart)

        loaded = JsonCartRepository(path).load()

        assert loaded.bound_pharmacy_id == "P"
        assert loaded.find("m1").quantity == Quantity(2)
        assert loaded.total == Money.of("40.00")

    def test_rupee_symbol_not_escaped(self, tmp_path):
        path = tmp_path / "cart.json"
        cart = Cart()
        cart.add_item(CartItem("m1", "P", "Dolo 650 ₹ pack", Money.of("20")))
        JsonCartRepository(path).save(cart)
        assert "₹" in path.read_text(encoding="utf-8")

    def test_zero_quantity_line_dropped(self, tmp_path):
        path = tmp_path / "cart.json"
        path.write_text(
            json.dumps(
                {
                    "bound_pharmacy_id": "P",
                    "items": [
                        {"medicine_id": "m1", "pharmacy_id": "P", "price": "20.00", "quantity": 0},
                        {"medicine_id": "m2", "pharmacy_id": "P", "price": "10.00", "quantity": 1},
                    ],
                }
            ),
            encoding="utf-8",
        )

        cart = JsonCartRepository(path).load()

        assert [i.medicine_id for i in cart.items] == ["m2"]

    def test_foreign_pharmacy_line_dropped(self, tmp_path):
        path = tmp_path / "cart.json"
        path.write_text(
            json.dumps(
                {
                    "bound_pharmacy_id": "P",
                    "items": [
                        {"medicine_id": "m1", "pharmacy_id": "P", "price": "20.00", "quantity": 1},
                        {"medicine_id": "m2", "pharmacy_id": "Q", "price": "10.00", "quantity": 1},
                    ],
                }
            ),
            encoding="utf-8",
        )

        cart = JsonCartRepository(path).load()

        assert [i.medicine_id for i in cart.items] == ["m1"]
        assert cart.bound_pharmacy_id == "P"

    def test_corrupt_file_gives_empty_cart(self, tmp_path):
        path = tmp_path / "cart.json"
        path.write_text("{not json", encoding="utf-8")
        assert JsonCartRepository(path).load().is_empty

    def test_cleared_cart_saved_unbound(self, tmp_path):
        path = tmp_path / "cart.json"
        repo = JsonCartRepository(path)
        cart = Cart()
        cart.add_item(_item("m1"))
        repo.save(cart)
        cart.clear()
        repo.save(cart)

        assert json.loads(path.read_text(encoding="utf-8")) == {
            "bound_pharmacy_id": None,
            "items": [],
        }


class TestJsonSeenOrderRepository:

    def test_starts_empty(self, tmp_path):
        assert JsonSeenOrderRepository(tmp_path / "seen.json").load() == set()

    def test_ids_accumulate_across_instances(self, tmp_path):
        path = tmp_path / "seen.json"
        JsonSeenOrderRepository(path).add({"rx-2"})
        JsonSeenOrderRepository(path).add({"rx-1", "rx-2"})

        assert JsonSeenOrderRepository(path).load() == {"rx-1", "rx-2"}
        assert json.loads(path.read_text(encoding="utf-8")) == ["rx-1", "rx-2"]

    def test_corrupt_file_treated_as_empty(self, tmp_path):
        path = tmp_path / "seen.json"
        path.write_text("oops", encoding="utf-8")
        assert JsonSeenOrderRepository(path).load() == set()
