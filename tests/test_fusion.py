"""Tests for detection matching and cross-source fusion."""

import pytest


def element(name, corners=None, source="ml-object", confidence=0.8, element_id=None, position=None):
    from inkfusion.models import BoundingBox, DetectedElement, ElementSource, Point

    bbox = BoundingBox.from_corners(*corners) if corners else None
    return DetectedElement(
        id=element_id or f"elem_{name}_{source}",
        name=name,
        confidence=confidence,
        bounding_box=bbox,
        position=Point(x=position[0], y=position[1]) if position else None,
        source=ElementSource(source),
    )


class TestNameSimilarity:
    """Tests for label comparison."""

    @pytest.mark.parametrize("a,b,expected", [
        ("Dog", "dog", 1.0),
        ("dog", "hot dog", 0.7),
        ("red house", "house cat", 0.5),
        ("big cat", "big dog", 0.0),
        ("cat", "dog", 0.0),
        ("", "dog", 0.0),
    ])
    def test_similarity(self, a, b, expected):
        from inkfusion.fusion.matching import name_similarity
        assert name_similarity(a, b) == expected


class TestOverlap:
    """Tests for IoU and the same-object predicate."""

    def test_iou(self):
        from inkfusion.fusion.matching import iou
        from inkfusion.models import BoundingBox

        a = BoundingBox.from_corners(0, 0, 0.5, 0.5)
        b = BoundingBox.from_corners(0, 0, 0.5, 0.3)

        assert iou(a, b) == pytest.approx(0.6)
        assert iou(a, a) == pytest.approx(1.0)
        assert iou(a, None) == 0.0

    def test_disjoint_boxes(self):
        from inkfusion.fusion.matching import iou
        from inkfusion.models import BoundingBox

        a = BoundingBox.from_corners(0, 0, 0.1, 0.1)
        b = BoundingBox.from_corners(0.5, 0.5, 0.6, 0.6)
        assert iou(a, b) == 0.0

    def test_high_overlap_is_same_object(self):
        from inkfusion.fusion.matching import is_same_object

        a = element("dog", (0, 0, 0.5, 0.5))
        b = element("puppy", (0, 0, 0.5, 0.3))

        assert is_same_object(a, b)
        assert is_same_object(b, a)

    def test_same_name_close_centers(self):
        """Matching names merge on a weak overlap when centers are close."""
        from inkfusion.fusion.matching import is_same_object

        a = element("cat", (0, 0, 0.2, 0.2))
        b = element("Cat", (0.1, 0.1, 0.3, 0.3))
        c = element("dog", (0.1, 0.1, 0.3, 0.3))

        assert is_same_object(a, b)
        assert is_same_object(b, a)
        assert not is_same_object(a, c)

    def test_missing_box_never_matches(self):
        from inkfusion.fusion.matching import is_same_object

        a = element("cat", (0, 0, 0.2, 0.2))
        assert not is_same_object(a, element("cat"))


class TestBestMatch:
    """Tests for locating a label among located candidates."""

    def test_closest_named_candidate(self):
        from inkfusion.fusion.matching import find_best_match

        candidates = [
            element("tree", (0.45, 0.45, 0.55, 0.55)),
            element("sun", (0.47, 0.45, 0.57, 0.55)),
        ]
        index, score = find_best_match("sun", 0.52, 0.5, candidates)

        assert index == 1
        assert score == pytest.approx(0.6 * 1.0 + 0.4 * 1.0)

    def test_distant_candidates_ignored(self):
        from inkfusion.fusion.matching import find_best_match

        candidates = [element("sun", (0.8, 0.8, 0.9, 0.9)), element("sun")]
        assert find_best_match("sun", 0.2, 0.2, candidates) is None


class TestFallback:
    """Tests for keyword-sized fallback boxes."""

    def test_keyword_size(self, default_config):
        from inkfusion.fusion.merge import fallback_box

        bbox = fallback_box("Face", 0.5, 0.5, default_config)
        assert bbox.as_list() == pytest.approx([0.425, 0.425, 0.575, 0.575])

    def test_default_size(self, default_config):
        from inkfusion.fusion.merge import fallback_size
        assert fallback_size("cloud", default_config) == (0.1, 0.1)

    def test_clipped_at_corner(self, default_config):
        from inkfusion.fusion.merge import fallback_box

        bbox = fallback_box("face", 0.02, 0.02, default_config)

        assert bbox.min_x == 0.0
        assert bbox.min_y == 0.0
        assert bbox.max_x == pytest.approx(0.095)
        assert bbox.center_x == pytest.approx(0.0475)


class TestMergeElements:
    """Tests for merging two candidates."""

    def test_priority_source_supplies_box(self, default_config):
        from inkfusion.fusion.merge import _Candidate, merge_elements
        from inkfusion.models import ElementSource

        a = element("dog", (0, 0, 0.5, 0.5), source="vision-api", confidence=0.6, element_id="A")
        b = element("puppy", (0, 0, 0.5, 0.3), source="ml-object", confidence=0.9, element_id="B")

        merged = merge_elements(_Candidate(a, a.source), _Candidate(b, b.source), default_config)

        assert merged.element.id == "A"
        assert merged.element.name == "dog"
        assert merged.element.confidence == 0.9
        assert merged.element.source == ElementSource.HYBRID
        assert merged.element.bounding_box.as_list() == [0, 0, 0.5, 0.3]
        assert merged.box_source == ElementSource.ML_OBJECT

    def test_tie_keeps_existing_box(self, default_config):
        from inkfusion.fusion.merge import _Candidate, merge_elements

        a = element("dog", (0, 0, 0.5, 0.5), element_id="A")
        b = element("dog", (0, 0, 0.5, 0.3), element_id="B")

        merged = merge_elements(_Candidate(a, a.source), _Candidate(b, b.source), default_config)
        assert merged.element.bounding_box.as_list() == [0, 0, 0.5, 0.5]

    def test_stroke_ids_united(self, default_config):
        from inkfusion.fusion.merge import _Candidate, merge_elements

        a = element("dog", (0, 0, 0.5, 0.5)).model_copy(update={"stroke_ids": ["s1", "s2"]})
        b = element("dog", (0, 0, 0.5, 0.5)).model_copy(update={"stroke_ids": ["s2", "s3"]})

        merged = merge_elements(_Candidate(a, a.source), _Candidate(b, b.source), default_config)
        assert merged.element.stroke_ids == ["s1", "s2", "s3"]


class TestFuseElements:
    """Tests for the full fusion pass."""

    def test_overlapping_detections_merge(self):
        from inkfusion.fusion.merge import fuse_elements
        from inkfusion.models import ElementSource

        a = element("dog", (0, 0, 0.5, 0.5), source="vision-api", confidence=0.6, element_id="A")
        b = element("puppy", (0, 0, 0.5, 0.3), source="ml-object", confidence=0.9, element_id="B")

        [fused] = fuse_elements([a, b], [], 500, 500)

        assert fused.id == "A"
        assert fused.name == "dog"
        assert fused.confidence == 0.9
        assert fused.source == ElementSource.HYBRID
        assert fused.bounding_box.as_list() == [0, 0, 0.5, 0.3]

    def test_distinct_detections_kept(self):
        from inkfusion.fusion.merge import fuse_elements

        a = element("dog", (0, 0, 0.2, 0.2))
        b = element("cat", (0.6, 0.6, 0.9, 0.9))

        fused = fuse_elements([a, b], [], 500, 500)
        assert [e.name for e in fused] == ["dog", "cat"]

    def test_input_not_mutated(self):
        from inkfusion.fusion.merge import fuse_elements
        from inkfusion.models import ElementSource

        a = element("dog", (0, 0, 0.5, 0.5), source="vision-api")
        b = element("puppy", (0, 0, 0.5, 0.3))
        fuse_elements([a, b], [], 500, 500)

        assert a.source == ElementSource.VISION_API
        assert a.bounding_box.as_list() == [0, 0, 0.5, 0.5]

    def test_label_resolved_from_strokes(self, semicircle_strokes):
        """A box-less label takes the union box of the ink around its position."""
        from inkfusion.fusion.merge import fuse_elements
        from inkfusion.models import ElementSource

        label = element("circle", source="vision-api", position=(0.5, 0.5))
        [fused] = fuse_elements([label], semicircle_strokes, 500, 500)

        assert fused.source == ElementSource.STROKE_GEOMETRY
        assert fused.stroke_ids == ["top", "bottom"]
        assert fused.bounding_box.min_x == pytest.approx(0.4)
        assert fused.bounding_box.max_x == pytest.approx(0.6)
        assert fused.bounding_box.center_y == pytest.approx(0.5, abs=1e-3)
        assert fused.features is not None

    def test_label_without_ink_falls_back(self):
        from inkfusion.fusion.merge import fuse_elements
        from inkfusion.models import ElementSource

        label = element("face", source="vision-api", position=(0.5, 0.5))
        [fused] = fuse_elements([label], [], 500, 500)

        assert fused.source == ElementSource.FALLBACK
        assert fused.bounding_box.as_list() == pytest.approx([0.425, 0.425, 0.575, 0.575])

    def test_label_without_position_uses_default(self):
        from inkfusion.fusion.merge import fuse_elements

        [fused] = fuse_elements([element("cloud", source="vision-api")], [], 500, 500)
        assert fused.bounding_box.center == pytest.approx((0.5, 0.5))

    def test_label_merges_into_located_match(self):
        from inkfusion.fusion.merge import fuse_elements
        from inkfusion.models import ElementSource

        located = element("sun", (0.45, 0.45, 0.55, 0.55), confidence=0.5, element_id="located")
        label = element("sun", source="vision-api", confidence=0.95, position=(0.52, 0.5))

        [fused] = fuse_elements([located, label], [], 500, 500)

        assert fused.id == "located"
        assert fused.source == ElementSource.HYBRID
        assert fused.confidence == 0.95
        assert fused.bounding_box.as_list() == [0.45, 0.45, 0.55, 0.55]

    def test_every_output_has_a_box(self, semicircle_strokes):
        from inkfusion.fusion.merge import fuse_elements

        inputs = [
            element("circle", source="vision-api", position=(0.5, 0.5)),
            element("eye", source="vision-api", position=(0.1, 0.9)),
            element("tree", (0.7, 0.1, 0.9, 0.4)),
            element("cloud", source="vision-api"),
        ]
        fused = fuse_elements(inputs, semicircle_strokes, 500, 500)

        assert fused
        assert all(e.bounding_box is not None for e in fused)

    def test_nearby_labels_stay_distinct(self):
        """Labels close together on blank canvas each keep a fallback box of their own."""
        from inkfusion.fusion.merge import fuse_elements
        from inkfusion.models import ElementSource

        inputs = [
            element("eye", source="vision-api", position=(0.40, 0.40)),
            element("nose", source="vision-api", position=(0.45, 0.48)),
            element("mouth", source="vision-api", position=(0.45, 0.55)),
        ]
        fused = fuse_elements(inputs, [], 500, 500)

        assert [e.name for e in fused] == ["eye", "nose", "mouth"]
        assert all(e.source == ElementSource.FALLBACK for e in fused)

    def test_label_not_absorbed_by_earlier_fallback(self):
        from inkfusion.fusion.merge import fuse_elements
        from inkfusion.models import ElementSource

        inputs = [
            element("cat", source="vision-api", position=(0.5, 0.5)),
            element("ball", source="vision-api", position=(0.55, 0.5)),
        ]
        fused = fuse_elements(inputs, [], 500, 500)

        assert [e.name for e in fused] == ["cat", "ball"]
        assert ElementSource.HYBRID not in [e.source for e in fused]

    def test_labels_on_same_ink_not_merged(self, semicircle_strokes):
        """Two labels that resolve to the same strokes stay separate elements."""
        from inkfusion.fusion.merge import fuse_elements
        from inkfusion.models import ElementSource

        inputs = [
            element("circle", source="vision-api", position=(0.5, 0.5)),
            element("ball", source="vision-api", position=(0.5, 0.5)),
        ]
        fused = fuse_elements(inputs, semicircle_strokes, 500, 500)

        assert [e.name for e in fused] == ["circle", "ball"]
        assert all(e.source == ElementSource.STROKE_GEOMETRY for e in fused)

    def test_label_ignores_same_priority_box(self):
        """A vision label never takes over a located vision detection."""
        from inkfusion.fusion.merge import fuse_elements
        from inkfusion.models import ElementSource

        located = element("sun", (0.45, 0.45, 0.55, 0.55), source="vision-api", element_id="located")
        label = element("sun", source="vision-api", confidence=0.95, position=(0.52, 0.5))

        fused = fuse_elements([located, label], [], 500, 500)

        assert len(fused) == 2
        assert fused[0].id == "located"
        assert fused[0].source == ElementSource.VISION_API
        assert fused[0].confidence == 0.8
        assert fused[1].source == ElementSource.FALLBACK

    def test_label_targets_rank_above_vision(self, default_config):
        from inkfusion.fusion.merge import _Candidate, _label_targets
        from inkfusion.models import ElementSource

        candidates = [
            _Candidate(element("a", (0, 0, 0.1, 0.1), source="vision-api"), ElementSource.VISION_API),
            _Candidate(element("b", (0, 0, 0.1, 0.1), source="ml-object"), ElementSource.ML_OBJECT),
            _Candidate(element("c", (0, 0, 0.1, 0.1), source="fallback"), ElementSource.FALLBACK),
            _Candidate(element("d", (0, 0, 0.1, 0.1), source="sketch-cnn"), ElementSource.SKETCH_CNN),
        ]

        assert _label_targets(candidates, default_config) == [1, 3]

    def test_shapes_to_elements(self, circle_stroke):
        from inkfusion.fusion.merge import shapes_to_elements
        from inkfusion.models import ElementSource
        from inkfusion.shapes.classify import classify_stroke

        [shape_element] = shapes_to_elements([classify_stroke(circle_stroke)], 500, 500)

        assert shape_element.name == "circle"
        assert shape_element.source == ElementSource.STROKE_GEOMETRY
        assert shape_element.stroke_ids == ["circle"]
        assert shape_element.bounding_box.min_x == pytest.approx(0.4)
        assert shape_element.bounding_box.max_x == pytest.approx(0.6)
