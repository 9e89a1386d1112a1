# result_analyzer_base.py: base class for result analyzers
# Copyright DeGirum Corporation 2025
# All rights reserved

"""
Result Analyzer Base Module Overview
====================================

This module provides a base class (`ResultAnalyzerBase`) for analyzers which run on DeGirum PySDK
inference results, such as `ZoneTransitCounter`.

Key Concepts
------------

- **Analysis**:
  By overriding the `analyze()` method, child classes read and augment the inference result
  (e.g., by adding `track_id` keys to the `results` list or new attributes to the result object).

- **Annotation**:
  By overriding the `annotate()` method, child classes can draw additional overlays on the
  original input image. The base implementation returns the image unchanged.

- **Finalization**:
  Analyzers accumulating state over a stream of results (such as per-class transit counts)
  override `finalize()`, which `analyze_stream()` calls once the stream is exhausted.

Results are duck-typed: any object with a `results` list of detection dictionaries
(and an `image` array, when the analyzer needs the frame size) can be analyzed.
"""

import numpy as np
from abc import ABC, abstractmethod
from typing import Iterable, Iterator, List, Union


class ResultAnalyzerBase(ABC):
    """
    Base class for result analyzers which can modify or extend the content of inference results
    and optionally annotate images with new data.

    Subclasses should override:
      - `analyze(result)`: to augment or inspect the inference result.
      - `annotate(result, image)`: to draw additional overlays onto the provided image.
    """

    @abstractmethod
    def analyze(self, result):
        """
        Analyze and optionally modify an inference result.

        Args:
            result (degirum.postprocessor.InferenceResults):
                The inference result object to analyze. Subclasses can read and/or modify
                the internal `results` list or other properties.
        """

    def annotate(self, result, image: np.ndarray) -> np.ndarray:
        """
        Annotate an image with additional data derived from the analysis step.

        Args:
            result (degirum.postprocessor.InferenceResults):
                The (already analyzed) inference result object.
            image (numpy.ndarray):
                The original (or base) image to annotate.

        Returns:
            numpy.ndarray:
                The annotated image. This base implementation returns the image unchanged.
        """
        return image

    def analyze_and_annotate(self, result, image: np.ndarray) -> np.ndarray:
        """
        Helper method to perform both analysis and annotation in one step.

        Args:
            result (degirum.postprocessor.InferenceResults):
                The inference result object to process.
            image (numpy.ndarray):
                The image to annotate.

        Returns:
            numpy.ndarray:
                The annotated image after analysis.
        """
        self.analyze(result)
        return self.annotate(result, image)

    def finalize(self):
        """
        Perform finalization actions once the stream of results is over.

        By default, this does nothing.
        """


def analyze_stream(
    results: Iterable, analyzers: Union[ResultAnalyzerBase, List[ResultAnalyzerBase]]
) -> Iterator:
    """
    Apply analyzers to a stream of inference results.

    Each result is passed to `analyze()` of every analyzer, in order, and then yielded.
    When the stream is exhausted (or the generator is closed), `finalize()` is called
    for every analyzer.

    Args:
        results (Iterable): Inference results, one per frame.
        analyzers (ResultAnalyzerBase or List[ResultAnalyzerBase]): Analyzers to apply.

    Yields:
        Analyzed inference results.
    """
    analyzers = analyzers if isinstance(analyzers, list) else [analyzers]
    try:
        for result in results:
            for analyzer in analyzers:
                analyzer.analyze(result)
            yield result
    finally:
        for analyzer in analyzers:
            analyzer.finalize()
