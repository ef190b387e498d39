"""Tests for model output classification and resolution."""

from __future__ import annotations

from types import SimpleNamespace

import numpy as np
import pytest

from autodoc_rag.rag.model_output import (
    FlatOutput,
    UnrecognizedOutput,
    WrappedOutput,
    classify_model_output,
    resolve_model_output,
)


class TestClassify:
    def test_flat_list(self):
        out = classify_model_output([3.0, 4.0])
        assert isinstance(out, FlatOutput)
        assert out.vector.tolist() == [3.0, 4.0]

    def test_nested_takes_first_row(self):
        out = classify_model_output([[1.0, 0.0], [0.0, 1.0]])
        assert isinstance(out, FlatOutput)
        assert out.vector.tolist() == [1.0, 0.0]

    def test_numpy_batch_is_not_mistaken_for_wrapped(self):
        # ndarray has a .data buffer; it must still classify as flat
        out = classify_model_output(np.array([[0.5, 0.5]], dtype=np.float32))
        assert isinstance(out, FlatOutput)

    def test_object_with_data(self):
        out = classify_model_output(SimpleNamespace(data=[1.0, 2.0, 2.0]))
        assert isinstance(out, WrappedOutput)
        assert out.vector.tolist() == [1.0, 2.0, 2.0]

    def test_mapping_with_data(self):
        assert isinstance(classify_model_output({"data": np.ones(3)}), WrappedOutput)

    @pytest.mark.parametrize(
        "raw",
        [None, "vector", 42, [], [[]], {"embedding": [1.0]}, SimpleNamespace(data="abc"), [["a", "b"]], np.ones((1, 2, 3))],
    )
    def test_unrecognized(self, raw):
        assert isinstance(classify_model_output(raw), UnrecognizedOutput)


class TestResolve:
    def test_normalizes(self):
        vec = resolve_model_output(FlatOutput(np.array([3.0, 4.0])), 2)
        assert vec.tolist() == pytest.approx([0.6, 0.8])

    def test_unrecognized_is_none(self):
        assert resolve_model_output(UnrecognizedOutput(object()), 2) is None

    def test_zero_vector_is_none(self):
        assert resolve_model_output(FlatOutput(np.zeros(4)), 4) is None

    def test_wrong_dimension_is_none(self):
        assert resolve_model_output(WrappedOutput(np.ones(3)), 4) is None

    def test_non_finite_is_none(self):
        assert resolve_model_output(FlatOutput(np.array([1.0, np.nan])), 2) is None
