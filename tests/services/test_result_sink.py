import asyncio

from alivecheck.services.result_sink import CallbackSink, ResultChannel


def test_channel_delivers_only_the_first_message():
    delivered = []
    channel = ResultChannel(CallbackSink(delivered.append))

    assert channel.complete("first") is True
    assert channel.complete("second") is False
    assert delivered == ["first"]
    assert channel.message == "first"
    assert channel.completed is True


def test_wait_resolves_before_and_after_completion():
    async def main():
        early = ResultChannel(CallbackSink(lambda m: None))
        waiter = asyncio.ensure_future(early.wait())
        await asyncio.sleep(0)
        early.complete("early")

        late = ResultChannel(CallbackSink(lambda m: None))
        late.complete("late")
        return await waiter, await late.wait()

    assert asyncio.run(main()) == ("early", "late")


def test_sink_exception_is_contained():
    def explode(message):
        raise RuntimeError("pipeline down")

    channel = ResultChannel(CallbackSink(explode))
    assert channel.complete("msg") is True
    assert channel.complete("again") is False
