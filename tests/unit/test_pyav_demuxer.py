import io
from types import SimpleNamespace

import pytest

from contact_capture.errors import DemuxError
from plugins.demuxers.pyav.impl import PyAVDemuxer, track_label
from sdk.registry import Registry


def test_track_label_reads_stream_title():
    assert track_label(SimpleNamespace(metadata={"title": "AUDIO_FROM_CUSTOMER"})) == "AUDIO_FROM_CUSTOMER"
    assert track_label(SimpleNamespace(metadata={"TITLE": "AUDIO_TO_CUSTOMER"})) == "AUDIO_TO_CUSTOMER"
    assert track_label(SimpleNamespace(metadata={})) is None
    assert track_label(object()) is None


def test_garbage_feed_is_a_demux_error():
    feed = io.BytesIO(b"this is not a matroska stream" * 64)

    with pytest.raises(DemuxError):
        list(PyAVDemuxer().frames(feed))


def test_registry_resolves_default_demuxer():
    registry = Registry({"demuxer": "plugins.demuxers.pyav.impl:PyAVDemuxer"})

    assert isinstance(registry.create("demuxer"), PyAVDemuxer)


def test_registry_reports_bad_target():
    registry = Registry({"demuxer": "plugins.demuxers.pyav.impl:Nope"})

    with pytest.raises(RuntimeError):
        registry.create("demuxer")
    registry.register("demuxer", "no_such_module_here:Thing")
    with pytest.raises(RuntimeError):
        registry.resolve("demuxer")
