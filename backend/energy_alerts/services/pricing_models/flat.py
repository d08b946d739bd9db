from decimal import Decimal


def calculate(consumption: Decimal, rate: Decimal) -> Decimal:
    return consumption * rate
