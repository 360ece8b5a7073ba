import pytest

from librecal.acquisition import (
    CoefficientReader,
    ProgressTracker,
    param_name,
    parse_point,
    to_float,
    to_int,
)
from librecal.standard import Standard

from fake_librecal import FakeLibreCAL, full_set, reflect_points, through_points


def test_param_names():
    assert param_name(Standard.OPEN, 1) == "P1_OPEN"
    assert param_name(Standard.LOAD, 4) == "P4_LOAD"
    assert param_name(Standard.THROUGH, 2, 3) == "P23_THROUGH"
    with pytest.raises(ValueError):
        param_name(Standard.THROUGH, 1)
    with pytest.raises(ValueError):
        param_name(Standard.NONE, 1)


def test_numeric_fallbacks():
    assert to_int("42") == 42
    assert to_int("abc") == 0
    assert to_int("") == 0
    assert to_float("1.5") == 1.5
    assert to_float("nope") == 0.0


def test_parse_one_port_point():
    p = parse_point("1.5,0.25,-0.75")
    assert p.frequency == pytest.approx(1.5e9)
    assert p.s == [complex(0.25, -0.75)]


def test_parse_two_port_point_swaps_s21_s12():
    p = parse_point("2,1,2,3,4,5,6,7,8")
    assert p.frequency == pytest.approx(2e9)
    assert p.s == [complex(1, 2), complex(5, 6), complex(3, 4), complex(7, 8)]


def test_parse_point_with_garbage_fields():
    p = parse_point("x,0.5,y")
    assert p.frequency == 0.0
    assert p.s == [complex(0.5, 0.0)]


def test_parse_empty_record():
    p = parse_point("")
    assert p.frequency == 0.0
    assert p.s == []


def test_progress_ten_points():
    emitted = []
    tracker = ProgressTracker(10, emitted.append)
    tracker.start()
    for _ in range(10):
        tracker.advance()
    assert emitted == list(range(0, 101, 10))


def test_progress_never_repeats():
    emitted = []
    tracker = ProgressTracker(1000, emitted.append)
    tracker.start()
    for _ in range(1000):
        tracker.advance()
    assert emitted == list(range(0, 101))


def test_progress_zero_total():
    emitted = []
    tracker = ProgressTracker(0, emitted.append)
    tracker.start()
    tracker.advance()
    assert emitted == []


def test_read_two_port_device(fake_device):
    progress = []
    sets = CoefficientReader(fake_device.query, 2, progress.append).read()

    assert len(sets) == 1
    factory = sets[0]
    assert factory.name == "FACTORY"
    assert factory.ports == 2
    assert len(factory.opens) == len(factory.shorts) == len(factory.loads) == 2
    assert len(factory.throughs) == 1

    through = factory.get_through(1, 2)
    assert through is factory.throughs[0]
    assert through.ports == 2
    assert through.point(0).s == [complex(0.1, 0), complex(0.8, 0), complex(0.9, 0), complex(0.2, 0)]
    assert factory.get_through(2, 1) is None
    assert factory.get_through(1, 1) is None

    assert factory.get_open(1).point(0).frequency == pytest.approx(1e9)
    assert all(not t.modified for t in factory.traces())

    # 7 points in total -> 0, 14, 28, 42, 57, 71, 85, 100
    assert progress[0] == 0
    assert progress[-1] == 100
    assert progress == sorted(set(progress))


def test_counts_are_queried_in_both_passes(fake_device):
    CoefficientReader(fake_device.query, 2).read()
    # 7 parameters, once in the pre-scan and once in the download pass
    assert fake_device.count(":COEFF:NUM?") == 14
    assert fake_device.count(":COEFF:GET?") == 7


def test_progress_spans_all_sets():
    coefficients = {
        "FACTORY": {"P1_OPEN": reflect_points(5)},
        "USER": {"P1_SHORT": reflect_points(5)},
    }
    device = FakeLibreCAL(ports=1, coefficients=coefficients)
    progress = []
    sets = CoefficientReader(device.query, 1, progress.append).read()
    assert [s.name for s in sets] == ["FACTORY", "USER"]
    assert progress == list(range(0, 101, 10))
    assert len(sets[0].get_open(1)) == 5
    assert len(sets[0].get_short(1)) == 0
    assert len(sets[1].get_short(1)) == 5


def test_not_ready_listing_aborts():
    device = FakeLibreCAL(coefficients={"FACTORY": full_set(2)}, coeff_list="NOTREADY")
    progress = []
    assert CoefficientReader(device.query, 2, progress.append).read() == []
    assert progress == []
    assert device.count(":COEFF:NUM?") == 0


def test_empty_set_names_are_dropped():
    device = FakeLibreCAL(coefficients={"FACTORY": full_set(2)}, coeff_list="FACTORY, ,")
    reader = CoefficientReader(device.query, 2)
    assert reader.list_sets() == ["FACTORY"]
    sets = reader.read()
    assert [s.name for s in sets] == ["FACTORY"]
    assert all(len(c.split()) == 3 for c in device.log if c.startswith(":COEFF:NUM?"))


def test_no_points_anywhere():
    device = FakeLibreCAL(coefficients={"FACTORY": {}})
    progress = []
    sets = CoefficientReader(device.query, 2, progress.append).read()
    assert progress == []
    assert len(sets) == 1
    assert len(sets[0].throughs) == 1
    assert all(len(t) == 0 for t in sets[0].traces())


def test_four_port_throughs_land_in_addressed_slots():
    params = full_set(4)
    # tag each through with its pair in the frequency field
    for a in range(1, 5):
        for b in range(a + 1, 5):
            params["P{}{}_THROUGH".format(a, b)] = through_points(1, start_ghz=a * 10 + b)
    device = FakeLibreCAL(ports=4, coefficients={"FACTORY": params})
    factory = CoefficientReader(device.query, 4).read()[0]
    assert len(factory.throughs) == 6
    for a in range(1, 5):
        for b in range(a + 1, 5):
            assert factory.get_through(a, b).point(0).frequency == pytest.approx((a * 10 + b) * 1e9)


def test_malformed_point_is_padded():
    device = FakeLibreCAL(
        ports=2,
        coefficients={"FACTORY": {"P12_THROUGH": ["1.0,0.5,0.5"]}},
    )
    factory = CoefficientReader(device.query, 2).read()[0]
    point = factory.get_through(1, 2).point(0)
    assert point.s == [complex(0.5, 0.5), 0j, 0j, 0j]


def test_unparsable_count_reads_as_zero():
    device = FakeLibreCAL(ports=1, coefficients={"FACTORY": {}})
    original_query = device.query

    def query(command):
        if command.startswith(":COEFF:NUM?"):
            return "n/a"
        return original_query(command)

    sets = CoefficientReader(query, 1).read()
    assert len(sets) == 1
    assert len(sets[0].get_open(1)) == 0
