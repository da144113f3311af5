import numpy as np
import pytest

from tiled_palette.shuffle import RandomShuffle


def test_each_pass_is_a_permutation():
    n = 17
    stream = RandomShuffle(n, np.random.default_rng(5))
    for _ in range(4):
        window = [stream.next() for _ in range(n)]
        assert sorted(window) == list(range(n))


def test_single_element_stream():
    stream = RandomShuffle(1)
    assert [stream.next() for _ in range(3)] == [0, 0, 0]
    assert len(stream) == 1


def test_same_seed_same_stream():
    a = RandomShuffle(10, np.random.default_rng(3))
    b = RandomShuffle(10, np.random.default_rng(3))
    assert [next(a) for _ in range(30)] == [next(b) for _ in range(30)]


def test_rejects_empty():
    with pytest.raises(ValueError):
        RandomShuffle(0)
