import pytest

from thing_sim.thing import SensorReading, Thing, ThingStatus


def test_initial_state_is_initializing():
    thing = Thing(logger=lambda _: None)
    assert thing.status is ThingStatus.INITIALIZING
    assert thing.read().status is ThingStatus.INITIALIZING


def test_tick_does_nothing_until_stable():
    thing = Thing(current_temperature=20.0, target_temperature=25.0, logger=lambda _: None)
    thing.tick()
    assert thing.current_temperature == 20.0


def test_tick_steps_toward_targets():
    thing = Thing(
        current_temperature=20.0,
        target_temperature=21.2,
        current_humidity=50.0,
        target_humidity=48.0,
        temperature_step=0.5,
        humidity_step=1.0,
        logger=lambda _: None,
    )
    thing.status = ThingStatus.STABLE
    thing.tick()
    assert thing.current_temperature == pytest.approx(20.5)
    assert thing.current_humidity == pytest.approx(49.0)
    thing.tick()
    thing.tick()
    assert thing.current_temperature == pytest.approx(21.2)
    assert thing.current_humidity == pytest.approx(48.0)


def test_initialize_then_terminate():
    thing = Thing(logger=lambda _: None)
    thing.initialize(10)
    assert thing.status is ThingStatus.STABLE
    assert thing.update_interval_msec == 10
    thing.terminate()
    assert thing.status is ThingStatus.TERMINATED
    thing.terminate()
    assert thing.status is ThingStatus.TERMINATED


def test_terminated_is_absorbing():
    thing = Thing(current_temperature=20.0, target_temperature=30.0, logger=lambda _: None)
    thing.initialize(1000)
    thing.terminate()
    thing.tick()
    assert thing.current_temperature == 20.0


def test_seed_only_while_initializing():
    thing = Thing(logger=lambda _: None)
    thing.seed(22.0, 40.0)
    assert thing.target_temperature == 22.0
    assert thing.current_humidity == 40.0
    assert thing.target_humidity == 40.0

    thing.initialize(1000)
    try:
        with pytest.raises(RuntimeError):
            thing.seed(23.0, 41.0)
    finally:
        thing.terminate()


def test_reading_to_dict():
    reading = SensorReading(temperature=21.0, humidity=45.0, status=ThingStatus.STABLE, timestamp="T")
    assert reading.to_dict() == {"temperature": 21.0, "humidity": 45.0, "status": "Stable", "timestamp": "T"}


def test_terminated_thing_cannot_be_reinitialized():
    thing = Thing(logger=lambda _: None)
    thing.initialize(1000)
    thing.terminate()
    with pytest.raises(RuntimeError):
        thing.initialize(1000)
    assert thing.status is ThingStatus.TERMINATED
