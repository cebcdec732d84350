from .async_case import AsyncTestCase  # noqa
