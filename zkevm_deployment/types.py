import click
from eth_utils import to_bytes


class MinInt(click.ParamType):
    name = "minint"

    def __init__(self, min_value):
        self.min_value = min_value

    def convert(self, value, param, ctx):
        try:
            ivalue = int(value)
        except ValueError:
            self.fail(f"{value} is not a valid integer", param, ctx)
        if ivalue < self.min_value:
            self.fail(
                f"{value} is less than the minimum allowed value of {self.min_value}", param, ctx
            )
        return ivalue


class Bytes32(click.ParamType):
    name = "bytes32"

    def convert(self, value, param, ctx):
        if isinstance(value, bytes):
            raw = value
        else:
            try:
                raw = to_bytes(hexstr=value)
            except ValueError:
                self.fail(f"{value} is not a valid hex string", param, ctx)
        if len(raw) != 32:
            self.fail(f"{value} is {len(raw)} bytes long, expected 32", param, ctx)
        return raw
