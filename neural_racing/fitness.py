def fitness(laps, checkpoint_index, position, track):
    """
    Distance travelled along the track, counting completed laps.

    The car is projected onto the line between the last passed checkpoint and
    the next one. The projection is not clamped, so the score keeps growing
    if the car overshoots a gate before its contact registers.
    """
    checkpoints = track.checkpoints
    previous = checkpoints[(checkpoint_index - 1) % len(checkpoints)]
    upcoming = checkpoints[checkpoint_index]

    pt0x, pt0y = previous.position
    pt1x, pt1y = position
    pt2x, pt2y = upcoming.position

    t = ((pt1x - pt0x) * (pt2x - pt0x) + (pt1y - pt0y) * (pt2y - pt0y)) / (
        (pt2x - pt0x) ** 2 + (pt2y - pt0y) ** 2
    )
    dist_from_last_checkpoint = t * upcoming.track_segment_length

    return (
        laps * track.total_track_length
        + (0 if checkpoint_index == 0 else previous.cumulative_distance)
        + dist_from_last_checkpoint
    )
