"""
Binary Rank Resolver
Maps a member's total active affiliates to a rank tier and bonus percentage
"""

# Ordered ascending by min_affiliates
BINARY_RANKS = [
    {'name': 'NONE', 'min_affiliates': 0, 'bonus_percent': 0},
    {'name': 'IGNITOR', 'min_affiliates': 3, 'bonus_percent': 10},
    {'name': 'SPARK', 'min_affiliates': 12, 'bonus_percent': 10},
    {'name': 'RISER', 'min_affiliates': 40, 'bonus_percent': 10},
    {'name': 'PIONEER', 'min_affiliates': 120, 'bonus_percent': 10},
    {'name': 'INNOVATOR', 'min_affiliates': 250, 'bonus_percent': 10},
    {'name': 'TRAILBLAZER', 'min_affiliates': 500, 'bonus_percent': 15},
    {'name': 'CATALYST', 'min_affiliates': 1111, 'bonus_percent': 15},
    {'name': 'MOGUL', 'min_affiliates': 2777, 'bonus_percent': 15},
    {'name': 'VANGUARD', 'min_affiliates': 5555, 'bonus_percent': 15},
    {'name': 'LUMINARY', 'min_affiliates': 11111, 'bonus_percent': 20},
    {'name': 'SOVEREIGN', 'min_affiliates': 22222, 'bonus_percent': 20},
    {'name': 'ZENITH', 'min_affiliates': 44444, 'bonus_percent': 20},
]


def _rank_index(total_active_affiliates):
    affiliates = total_active_affiliates or 0
    index = 0
    for i, rank in enumerate(BINARY_RANKS):
        if affiliates >= rank['min_affiliates']:
            index = i
        else:
            break
    return index


def resolve_rank(total_active_affiliates):
    """
    Get the highest rank whose threshold the affiliate count reaches.

    Returns a copy of the rank entry: name, min_affiliates, bonus_percent.
    Counts below the first threshold (including None or negatives) resolve to NONE.
    """
    return dict(BINARY_RANKS[_rank_index(total_active_affiliates)])


def get_next_rank_info(total_active_affiliates):
    """Describe the current rank and what is needed to reach the next one"""
    index = _rank_index(total_active_affiliates)
    current_rank = BINARY_RANKS[index]

    if index == len(BINARY_RANKS) - 1:
        return {
            'is_max_rank': True,
            'current_rank': current_rank['name'],
            'current_bonus_percent': current_rank['bonus_percent'],
            'message': "Highest rank achieved"
        }

    next_rank = BINARY_RANKS[index + 1]
    affiliates_needed = max(0, next_rank['min_affiliates'] - (total_active_affiliates or 0))

    return {
        'is_max_rank': False,
        'current_rank': current_rank['name'],
        'current_bonus_percent': current_rank['bonus_percent'],
        'next_rank': next_rank['name'],
        'next_bonus_percent': next_rank['bonus_percent'],
        'affiliates_needed': affiliates_needed,
        'message': f"{affiliates_needed} more active affiliates to reach {next_rank['name']}"
    }


def calculate_weaker_leg_pv(left_pv, right_pv):
    """Commission is based on the smaller leg"""
    return min(left_pv, right_pv)
