import unittest

from greenbond import errors
from greenbond.errors import (
    ERRORS_BY_KIND,
    CapExceeded,
    CapacityError,
    EscrowBusy,
    GreenBondError,
    SaleNotOpen,
    Unauthorized,
    split_message,
    translate,
)


class TestTranslate(unittest.TestCase):
    def test_known_kind_maps_to_its_class(self):
        error = translate(AssertionError("CapExceeded: investment exceeds the token cap."))

        self.assertIsInstance(error, CapExceeded)
        self.assertIsInstance(error, CapacityError)
        self.assertEqual(error.detail, "investment exceeds the token cap.")
        self.assertEqual(str(error), "CapExceeded: investment exceeds the token cap.")

    def test_unknown_message_keeps_its_text(self):
        message = "Transfer amount 5 exceeds allowance 0 for alice by spender con_x!"
        error = translate(AssertionError(message))

        self.assertIs(type(error), GreenBondError)
        self.assertEqual(str(error), message)

    def test_typed_error_passes_through(self):
        original = Unauthorized("Unauthorized: nope")
        self.assertIs(translate(original), original)

    def test_split_message(self):
        self.assertEqual(split_message("SaleNotOpen: later"), ("SaleNotOpen", "later"))
        self.assertEqual(split_message("Insufficient: funds"), (None, "Insufficient: funds"))
        self.assertEqual(split_message("no prefix"), (None, "no prefix"))


class TestTaxonomy(unittest.TestCase):
    def test_registry_is_keyed_by_kind(self):
        for kind, cls in ERRORS_BY_KIND.items():
            self.assertEqual(cls.kind, kind)
            self.assertTrue(issubclass(cls, GreenBondError))

    def test_retryable_flags(self):
        self.assertTrue(SaleNotOpen.retryable)
        self.assertTrue(EscrowBusy.retryable)
        self.assertTrue(errors.IncorrectPayment.retryable)
        self.assertFalse(Unauthorized.retryable)
        self.assertFalse(CapExceeded.retryable)
        self.assertFalse(errors.InvalidMilestones.retryable)

    def test_default_message_is_the_kind(self):
        self.assertEqual(str(errors.NothingToRelease()), "NothingToRelease")


if __name__ == '__main__':
    unittest.main()
