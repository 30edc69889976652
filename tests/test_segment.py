"""Tests for executing copy work items on a single rank."""

import os
import random

import pytest

from mpifileops.items import CopyPolicy, WorkItem, KIND_FILE, KIND_DIR, KIND_LINK
from mpifileops.segment import SegmentProcessor


class ListQueue:
    def __init__(self):
        self.items = []

    def enqueue(self, item):
        self.items.append(item)


def drain(processor, queue, shuffle=False):
    done = []
    while queue.items:
        if shuffle:
            random.shuffle(queue.items)
        item = queue.items.pop()
        done.append(item)
        processor.process(item, queue)
    return done


@pytest.fixture
def data():
    rng = random.Random(1234)
    return bytes(rng.getrandbits(8) for _ in range(10000))


def test_large_file_split_into_segments(tmp_path, data):
    src = tmp_path / 'src.bin'
    src.write_bytes(data)
    dst = tmp_path / 'dst.bin'

    processor = SegmentProcessor(policy=CopyPolicy(), segment_size=1024)
    queue = ListQueue()
    assert processor.enqueue_object(str(src), str(dst), queue) == 10
    assert [i.offset for i in queue.items] == list(range(10))
    assert all(i.nsegments == 10 and i.size == 10000 and i.kind == KIND_FILE for i in queue.items)

    drain(processor, queue, shuffle=True)

    assert dst.read_bytes() == data
    assert processor.num_files == 1
    assert processor.num_bytes == 10000


def test_segments_only_touch_their_range(tmp_path):
    src = tmp_path / 'src'
    src.write_bytes(b'abcdefghij')
    dst = tmp_path / 'dst'
    dst.write_bytes(b'0123456789')

    processor = SegmentProcessor()
    processor.process_segment(WorkItem(1, 3, 10, str(src), str(dst), KIND_FILE))

    assert dst.read_bytes() == b'012def6789'


def test_stale_larger_destination_truncated(tmp_path, data):
    src = tmp_path / 'src.bin'
    src.write_bytes(data[:3000])
    dst = tmp_path / 'dst.bin'
    dst.write_bytes(b'x' * 20000)

    processor = SegmentProcessor(segment_size=1000)
    queue = ListQueue()
    processor.enqueue_object(str(src), str(dst), queue)
    drain(processor, queue, shuffle=True)

    assert dst.read_bytes() == data[:3000]


def test_empty_file_is_one_segment(tmp_path):
    src = tmp_path / 'empty'
    src.write_bytes(b'')
    dst = tmp_path / 'copy'

    processor = SegmentProcessor()
    queue = ListQueue()
    assert processor.enqueue_object(str(src), str(dst), queue) == 1
    drain(processor, queue)

    assert dst.exists()
    assert dst.read_bytes() == b''


def test_no_clobber_skips_existing(tmp_path):
    src = tmp_path / 'src'
    src.write_bytes(b'new contents')
    dst = tmp_path / 'dst'
    dst.write_bytes(b'old')

    processor = SegmentProcessor(policy=CopyPolicy(clobber=False))
    queue = ListQueue()
    assert processor.enqueue_object(str(src), str(dst), queue) == 0

    assert dst.read_bytes() == b'old'
    assert processor.num_skipped == 1
    assert processor.num_errors == 0


def test_file_over_directory_is_a_conflict(tmp_path, capsys):
    src = tmp_path / 'src'
    src.write_bytes(b'data')
    dst = tmp_path / 'dst'
    dst.mkdir()

    processor = SegmentProcessor()
    queue = ListQueue()
    assert processor.enqueue_object(str(src), str(dst), queue) == 0

    assert dst.is_dir()
    assert processor.num_errors == 1
    assert 'cannot overwrite' in capsys.readouterr().err


def test_directory_expands_into_children(tmp_path):
    src = tmp_path / 'tree'
    (src / 'sub').mkdir(parents=True)
    (src / 'a').write_bytes(b'a')
    (src / 'sub' / 'b').write_bytes(b'bb')
    dst = tmp_path / 'copy'

    processor = SegmentProcessor(policy=CopyPolicy(recursive=True))
    queue = ListQueue()
    processor.enqueue_object(str(src), str(dst), queue)
    assert [i.kind for i in queue.items] == [KIND_DIR]

    done = drain(processor, queue)

    assert sorted(i.kind for i in done) == [KIND_DIR, KIND_DIR, KIND_FILE, KIND_FILE]
    assert (dst / 'a').read_bytes() == b'a'
    assert (dst / 'sub' / 'b').read_bytes() == b'bb'
    assert processor.num_dirs == 2
    assert processor.num_files == 2


def test_symlink_copied_as_link(tmp_path):
    (tmp_path / 'target.txt').write_text('hello')
    os.symlink('target.txt', str(tmp_path / 'link'))
    dst = tmp_path / 'copy'

    processor = SegmentProcessor()
    queue = ListQueue()
    processor.enqueue_object(str(tmp_path / 'link'), str(dst), queue)
    assert queue.items[0].kind == KIND_LINK
    drain(processor, queue)

    assert dst.is_symlink()
    assert os.readlink(str(dst)) == 'target.txt'


def test_symlink_dereferenced(tmp_path):
    (tmp_path / 'target.txt').write_text('hello')
    os.symlink('target.txt', str(tmp_path / 'link'))
    dst = tmp_path / 'copy'

    processor = SegmentProcessor(policy=CopyPolicy(dereference=True))
    queue = ListQueue()
    processor.enqueue_object(str(tmp_path / 'link'), str(dst), queue)
    drain(processor, queue)

    assert not dst.is_symlink()
    assert dst.read_text() == 'hello'


def test_attributes_applied_once_after_writes(tmp_path):
    src = tmp_path / 'src'
    src.write_bytes(b'x' * 5000)
    os.chmod(str(src), 0o640)
    os.utime(str(src), (1000000000, 1000000000))
    dst = tmp_path / 'dst'

    processor = SegmentProcessor(policy=CopyPolicy(preserve=True), segment_size=1000)
    queue = ListQueue()
    processor.enqueue_object(str(src), str(dst), queue)
    drain(processor, queue, shuffle=True)

    # recorded once, for segment 0 only
    assert len(processor.deferred) == 1
    assert processor.apply_attributes() == 1

    st = os.stat(str(dst))
    assert st.st_mtime == 1000000000
    assert (st.st_mode & 0o777) == 0o640


def test_unreadable_directory_reported(tmp_path, capsys):
    processor = SegmentProcessor(policy=CopyPolicy(recursive=True))
    item = WorkItem(0, 1, 0, str(tmp_path / 'missing'), str(tmp_path / 'copy'), KIND_DIR)
    processor.process(item, ListQueue())

    assert processor.num_errors == 1
    assert 'cannot scan' in capsys.readouterr().err
