from urllib.parse import unquote_plus

import pytest

from conftest import K80_XML
from gpumon.collector import parsers, points
from gpumon.collector.models import GPUInfo, Point, escape_tag

TS = 1489662156000000000


def _line_fields(line):
    # "measurement,tags value=N ts"
    head, value, ts = line.split(" ")
    measurement, tags = head.split(",", 1)
    return measurement, dict(t.split("=", 1) for t in tags.split(",")), value, ts


def test_point_to_line():
    p = Point(measurement="gpu", tags=(("hostname", "h"), ("gpuid", "0")), value=83, timestamp=TS)
    assert p.to_line() == f"gpu,hostname=h,gpuid=0 value=83 {TS}"


def test_nine_points_per_gpu(snapshot_xml):
    report = parsers.parse_nvidia_smi_xml(snapshot_xml)
    pts = points.report_points(report, "node1", TS)

    assert len(pts) == points.POINTS_PER_GPU * len(report.gpus) == 18
    assert {p.timestamp for p in pts} == {TS}
    for gpu, chunk in zip(report.gpus, (pts[:9], pts[9:])):
        assert {dict(p.tags)["gpuid"] for p in chunk} == {gpu.id}
        assert {dict(p.tags)["minor"] for p in chunk} == {str(gpu.minor_number)}
        assert {dict(p.tags)["hostname"] for p in chunk} == {"node1"}
        assert len({p.measurement for p in chunk}) == 9


def test_measurement_names_and_order():
    report = parsers.parse_nvidia_smi_xml(K80_XML)
    names = [p.measurement for p in points.report_points(report, "h", TS)]
    assert names == [
        "fbmemory/total", "fbmemory/used", "fbmemory/free",
        "bar1memory/total", "bar1memory/used", "bar1memory/free",
        "gpu", "gpu/encoder", "gpu/decoder",
    ]


def test_values_are_converted(snapshot_xml):
    report = parsers.parse_nvidia_smi_xml(snapshot_xml)
    values = {p.measurement: p.value for p in points.gpu_points(report.gpus[0], "h", TS)}
    assert values["fbmemory/total"] == 11439 * 1048576
    assert values["fbmemory/used"] == 10890 * 1048576
    assert values["bar1memory/total"] == 16384 * 1048576
    assert values["gpu"] == 83
    assert values["gpu/encoder"] == 0


def test_product_name_is_escaped_and_decodable():
    gpu = GPUInfo(id="0", product_name="GeForce GTX 1080 Ti, rev=a", minor_number=2)
    tags = dict(points.gpu_tags(gpu, "h"))
    assert " " not in tags["product"]
    assert "," not in tags["product"] and "=" not in tags["product"]
    assert unquote_plus(tags["product"]) == "GeForce GTX 1080 Ti, rev=a"
    assert dict(points.gpu_tags(GPUInfo(id="0", product_name="Tesla K80", minor_number=0), "h"))["product"] == "Tesla+K80"


def test_unparseable_written_as_zero_by_default(snapshot_xml):
    gpu = parsers.parse_nvidia_smi_xml(snapshot_xml).gpus[1]  # encoder/decoder are N/A
    values = {p.measurement: p.value for p in points.gpu_points(gpu, "h", TS)}
    assert len(values) == 9
    assert values["gpu/encoder"] == 0
    assert values["gpu/decoder"] == 0


def test_unparseable_skip_policy(snapshot_xml, caplog):
    gpu = parsers.parse_nvidia_smi_xml(snapshot_xml).gpus[1]
    pts = points.gpu_points(gpu, "h", TS, unparseable="skip")
    assert len(pts) == 7
    assert "gpu/encoder" not in {p.measurement for p in pts}
    assert "skipping gpu/encoder" in caplog.text


def test_end_to_end_k80_payload():
    report = parsers.parse_nvidia_smi_xml(K80_XML)
    payload = points.encode(points.report_points(report, "node1", TS))
    lines = payload.split("\n")

    assert len(lines) == 9
    parsed = {m: (tags, int(v.split("=")[1]), int(ts)) for m, tags, v, ts in map(_line_fields, lines)}
    assert parsed["fbmemory/total"][1] == 11519 * 1048576
    assert parsed["fbmemory/used"][1] == 0
    assert parsed["bar1memory/free"][1] == 11519 * 1048576
    for name in ("gpu", "gpu/encoder", "gpu/decoder"):
        assert parsed[name][1] == 0
    assert parsed["gpu"][0] == {"hostname": "node1", "gpuid": "0", "product": "Tesla+K80", "minor": "0"}
    assert lines[0] == f"fbmemory/total,hostname=node1,gpuid=0,product=Tesla+K80,minor=0 value=12078546944 {TS}"


def test_encode_empty():
    assert points.encode([]) == ""


def test_point_tags_are_immutable():
    p = Point(measurement="gpu", tags=(("hostname", "h"),), value=1, timestamp=TS)
    assert isinstance(p.tags, tuple)
    with pytest.raises(TypeError):
        p.tags[0] = ("hostname", "other")


def test_tag_values_are_escaped():
    p = Point(measurement="gpu", tags=(("hostname", "node 1,a=b"), ("gpuid", "0")), value=7, timestamp=TS)
    assert p.to_line() == f"gpu,hostname=node\\ 1\\,a\\=b,gpuid=0 value=7 {TS}"
    assert escape_tag("plain") == "plain"


def test_gpu_without_id_or_product_omits_empty_tags():
    xml = """<nvidia_smi_log>
      <gpu id="0000:05:00.0"><product_name>Tesla K80</product_name><minor_number>0</minor_number></gpu>
      <gpu><minor_number>1</minor_number></gpu>
    </nvidia_smi_log>"""
    report = parsers.parse_nvidia_smi_xml(xml)
    lines = points.encode(points.report_points(report, "node 1,a=b", TS)).split("\n")

    assert len(lines) == 18
    assert lines[0].startswith("fbmemory/total,hostname=node\\ 1\\,a\\=b,gpuid=0000:05:00.0,product=Tesla+K80,minor=0 ")
    for line in lines[9:]:
        assert line.startswith(line.split(",", 1)[0] + ",hostname=node\\ 1\\,a\\=b,minor=1 value=0 ")
        assert "gpuid=" not in line and "product=" not in line
        assert "=," not in line and not line.endswith("=")
