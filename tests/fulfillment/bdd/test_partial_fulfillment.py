"""BDD tests for completing partially fulfilled orders."""

from pytest_bdd import scenarios

scenarios("features/partial_fulfillment.feature")
