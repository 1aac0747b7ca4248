import unittest

from marketplace.errors import ValidationError
from marketplace.services.pricing import PricingInput, calculate_pricing, gas_price_cents


class CalculatePricingTests(unittest.TestCase):
    def test_two_cylinders_with_add_on_and_delivery(self):
        result = calculate_pricing(PricingInput(
            unit_price_cents=2000,
            quantity=2,
            delivery_charges_cents=150,
            add_ons=[{"price_cents": 100, "quantity": 1}],
        ))
        self.assertEqual(result.add_ons_total_cents, 100)
        self.assertEqual(result.subtotal_cents, 4100)
        self.assertEqual(result.grand_total_cents, 4250)

    def test_security_and_urgent_fee_only_affect_grand_total(self):
        result = calculate_pricing(PricingInput(
            unit_price_cents=2000,
            quantity=1,
            security_charges_cents=5000,
            delivery_charges_cents=200,
            urgent_delivery_fee_cents=100,
        ))
        self.assertEqual(result.subtotal_cents, 2000)
        self.assertEqual(result.grand_total_cents, 7300)

    def test_add_on_quantity_multiplies_price(self):
        result = calculate_pricing(PricingInput(
            unit_price_cents=1000,
            quantity=1,
            add_ons=[{"price_cents": 250, "quantity": 3}, {"price_cents": 50}],
        ))
        self.assertEqual(result.add_ons_total_cents, 800)
        self.assertEqual(result.subtotal_cents, 1800)

    def test_to_dict_keys(self):
        result = calculate_pricing(PricingInput(unit_price_cents=10, quantity=1))
        self.assertEqual(
            result.to_dict(),
            {"add_ons_total_cents": 0, "subtotal_cents": 10, "grand_total_cents": 10},
        )

    def test_negative_amounts_are_rejected_not_clamped(self):
        with self.assertRaises(ValidationError) as ctx:
            calculate_pricing(PricingInput(unit_price_cents=2000, quantity=1, delivery_charges_cents=-150))
        self.assertIn("delivery_charges_cents", ctx.exception.details)

        with self.assertRaises(ValidationError):
            calculate_pricing(PricingInput(
                unit_price_cents=2000, quantity=1, add_ons=[{"price_cents": -1, "quantity": 1}],
            ))

    def test_quantity_must_be_at_least_one(self):
        with self.assertRaises(ValidationError):
            calculate_pricing(PricingInput(unit_price_cents=2000, quantity=0))

    def test_non_integer_amounts_are_rejected(self):
        with self.assertRaises(ValidationError):
            calculate_pricing(PricingInput(unit_price_cents=20.5, quantity=1))
        with self.assertRaises(ValidationError):
            calculate_pricing(PricingInput(unit_price_cents=True, quantity=1))
        with self.assertRaises(ValidationError):
            calculate_pricing(PricingInput(unit_price_cents=2000, quantity=1, add_ons=[{"quantity": 1}]))


class GasPriceTests(unittest.TestCase):
    def test_price_scales_with_cylinder_weight(self):
        self.assertEqual(gas_price_cents("15kg", 30000), 450000)
        self.assertEqual(gas_price_cents("6kg", 30000), 180000)

    def test_rounds_half_up_to_minor_unit(self):
        # 4.5 * 111 = 499.5
        self.assertEqual(gas_price_cents("4.5kg", 111), 500)
        # 11.8 * 333 = 3929.4
        self.assertEqual(gas_price_cents("11.8kg", 333), 3929)


if __name__ == "__main__":
    unittest.main()
