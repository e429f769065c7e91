"""Tests for console output formatting."""

import asyncio

from ibswatch.console import ConsoleReporter
from ibswatch.formatting import format_age, format_battery, format_probe
from ibswatch.models import DecodedReading, SchedulerState, SensorConfig
from ibswatch.scheduler import PollScheduler


class TestFormatting:
    def test_age(self):
        assert format_age(None) == "-"
        assert format_age(42) == "42s"
        assert format_age(600) == "10min"
        assert format_age(7300) == "2h"

    def test_battery_marks_low_level(self):
        assert format_battery(None) == "-"
        assert format_battery(DecodedReading(battery=55)) == "55%"
        assert format_battery(DecodedReading(battery=7)) == "7%!"

    def test_probe(self):
        assert format_probe(DecodedReading()) == "-"
        assert format_probe(DecodedReading(external_sensor=True)) == "ext"
        assert format_probe(DecodedReading(external_sensor=False)) == "int"


class TestRenderTable:
    def test_no_sensors(self):
        assert "No sensors configured" in ConsoleReporter([]).render_table()

    def test_rows_from_cache(self, radio, timers, recorder, make_advertisement):
        cellar = PollScheduler(SensorConfig(name="cellar", model="IBS-TH1"), radio, timers=timers)
        garage = PollScheduler(SensorConfig(name="garage-freezer", model="IBS-TH2"), radio, timers=timers)
        cellar.start()
        garage.start()
        cellar.get_temperature(recorder())
        radio.discover(make_advertisement(address="49:42:08:00:00:01"))

        table = ConsoleReporter([cellar, garage]).render_table()
        lines = table.splitlines()

        assert "2 sensors" in table
        cellar_row = next(line for line in lines if line.startswith("cellar "))
        assert cellar_row.split() == ["cellar", "18.1C", "int", "52%", "80%", "0s"]
        garage_row = next(line for line in lines if line.startswith("garage-freezer"))
        assert garage_row.split() == ["garage-freezer", "-", "-", "-", "-", "-"]


class TestReporter:
    async def test_print_waits_for_new_cycle(self, radio, timers, make_advertisement, make_frame, capsys):
        cellar = PollScheduler(SensorConfig(name="cellar", model="IBS-TH1", update_interval=60), radio, timers=timers)
        cellar.start()
        radio.discover(make_advertisement(make_frame(temperature=1000)))
        assert cellar.state is SchedulerState.READING_READY

        reporter = ConsoleReporter([cellar], interval=3600)
        await reporter.start()
        for _ in range(100):
            if cellar.state is SchedulerState.SCANNING:
                break
            await asyncio.sleep(0.005)
        assert capsys.readouterr().out == ""

        radio.discover(make_advertisement(make_frame(temperature=2000)))
        await asyncio.sleep(0.01)
        await reporter.stop()

        output = capsys.readouterr().out
        assert "20.0C" in output
        assert "10.0C" not in output
