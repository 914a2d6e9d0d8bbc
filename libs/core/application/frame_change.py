"""Cheap scene-change score between two encoded frames."""

MAX_SAMPLED_UNITS = 1000
SAMPLE_STRIDE = 10


def frame_difference(previous: str, current: str) -> float:
    """Return the share of sampled positions that differ, in percent.

    Compares the encoded payloads character by character on a fixed stride
    over a bounded prefix. This is a motion proxy, not a perceptual diff.
    """
    first = _payload(previous)
    second = _payload(current)
    sample_size = min(len(first), len(second), MAX_SAMPLED_UNITS)
    if sample_size == 0:
        return 0.0

    positions = range(0, sample_size, SAMPLE_STRIDE)
    differences = sum(1 for idx in positions if first[idx] != second[idx])
    return differences / len(positions) * 100


def _payload(image: str) -> str:
    if image.startswith("data:"):
        _, _, data = image.partition(",")
        return data
    return image
