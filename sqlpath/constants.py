"""
sqlpath/constants.py
Static catalogue data: practice curricula, industries, achievements, default prices
"""
from dataclasses import dataclass
from typing import Dict, List


# ================= PRACTICE TRACK =================

PERSONALIZED_INDUSTRY = "Personalized"

INDUSTRIES = [
    "E-commerce",
    "Finance & Banking",
    "Healthcare",
    "SaaS & Technology",
    "Logistics & Supply Chain",
    "Digital Marketing",
    PERSONALIZED_INDUSTRY,
]

DIFFICULTIES = ["Beginner", "Intermediate"]


@dataclass(frozen=True)
class ChallengeDefinition:
    """One curriculum slot: what the generated challenge has to teach."""
    id: int
    topic: str
    description: str


BEGINNER_CURRICULUM: List[ChallengeDefinition] = [
    ChallengeDefinition(1, "SELECT & Aliasing", "Retrieve specific columns and rename them using AS."),
    ChallengeDefinition(2, "SELECT DISTINCT", "Retrieve unique values from a column to remove duplicates."),
    ChallengeDefinition(3, "SELECT * (Wildcard)", "Retrieve all columns from a table."),
    ChallengeDefinition(4, "LIMIT / TOP", "Restrict the number of rows returned."),
    ChallengeDefinition(5, "WHERE & Comparison", "Filter rows using =, !=."),
    ChallengeDefinition(6, "WHERE & Comparison", "Filter rows using <, > operators."),
    ChallengeDefinition(7, "AND Logic", "Filter rows requiring multiple conditions to be true."),
    ChallengeDefinition(8, "OR Logic", "Filter rows where at least one condition is true."),
    ChallengeDefinition(9, "NOT Logic", "Filter rows by negating a condition."),
    ChallengeDefinition(10, "BETWEEN", "Filter values within a specific range."),
    ChallengeDefinition(11, "IN Operator", "Filter values matching a list of possibilities."),
    ChallengeDefinition(12, "LIKE Wildcards", "Pattern matching using % and _."),
    ChallengeDefinition(13, "IS NULL / IS NOT NULL", "Filter for missing or present values."),
    ChallengeDefinition(14, "ORDER BY", "Sort results in Ascending or Descending order."),
    ChallengeDefinition(15, "Multi-Column Sorting", "Sort by one column, then another."),
    ChallengeDefinition(16, "COUNT()", "Count the number of rows matching a criteria."),
    ChallengeDefinition(17, "SUM()", "Calculate the total sum of a numeric column."),
    ChallengeDefinition(18, "AVG()", "Calculate the average value of a numeric column."),
    ChallengeDefinition(19, "MIN() / MAX()", "Find the minimum and maximum values."),
    ChallengeDefinition(20, "GROUP BY & HAVING", "Group rows and filter groups based on aggregate values."),
]

INTERMEDIATE_CURRICULUM: List[ChallengeDefinition] = [
    ChallengeDefinition(1, "GROUP BY (Advanced)", "Group by multiple columns with aggregation."),
    ChallengeDefinition(2, "INNER JOIN", "Combine rows from two tables based on a related column."),
    ChallengeDefinition(3, "LEFT JOIN", "Retrieve all records from the left table and matching records from the right."),
    ChallengeDefinition(4, "UNION / UNION ALL", "Combine result sets of two or more SELECT statements."),
    ChallengeDefinition(5, "INTERSECT / EXCEPT", "Return common rows or unique rows between two queries."),
    ChallengeDefinition(6, "CASE (Simple)", "Conditional logic to transform data values."),
    ChallengeDefinition(7, "CASE (Searched)", "Complex conditional logic with multiple criteria."),
    ChallengeDefinition(8, "COALESCE / NULLIF", "Handle NULL values effectively."),
    ChallengeDefinition(9, "CAST / CONVERT", "Change data types of columns."),
    ChallengeDefinition(10, "String Functions (Basic)", "Use CONCAT and SUBSTRING."),
    ChallengeDefinition(11, "String Functions (Advanced)", "Use TRIM, LENGTH, and REPLACE."),
    ChallengeDefinition(12, "Date Functions (Diff)", "Calculate differences between dates (DATEDIFF)."),
    ChallengeDefinition(13, "Date Functions (Add/Extract)", "Add intervals to dates or extract parts (DATEADD, EXTRACT)."),
    ChallengeDefinition(14, "Numeric Functions", "Use ROUND, CEIL, FLOOR, ABS."),
    ChallengeDefinition(15, "Subqueries (WHERE)", "Use a subquery inside a WHERE clause."),
    ChallengeDefinition(16, "Subqueries (SELECT/FROM)", "Use subqueries in the SELECT list or FROM clause."),
    ChallengeDefinition(17, "CTEs (Simple)", "Create a Common Table Expression for readability."),
    ChallengeDefinition(18, "CTEs (Multi-step)", "Chain CTEs for complex logic."),
    ChallengeDefinition(19, "Complex Joins", "Join more than two tables to solve a business problem."),
    ChallengeDefinition(20, "Capstone Logic", "Combine Aggregates, Joins, and Logic for a complex report."),
]

CURRICULA: Dict[str, List[ChallengeDefinition]] = {
    "Beginner": BEGINNER_CURRICULUM,
    "Intermediate": INTERMEDIATE_CURRICULUM,
}


# ================= ACHIEVEMENTS =================

@dataclass(frozen=True)
class Achievement:
    key: str
    title: str
    description: str
    target: int
    kind: str  # challenge | xp | streak | course


ACHIEVEMENTS: List[Achievement] = [
    # Challenge milestones
    Achievement("fast-starter", "Fast Starter", "Complete 5 challenges", 5, "challenge"),
    Achievement("rising-star", "Rising Star", "Complete 10 challenges", 10, "challenge"),
    Achievement("dedicated-learner", "Dedicated Learner", "Complete 25 challenges", 25, "challenge"),
    Achievement("challenge-warrior", "Challenge Warrior", "Complete 50 challenges", 50, "challenge"),
    Achievement("centurion", "Centurion", "Complete 100 challenges", 100, "challenge"),

    # XP milestones
    Achievement("1k-club", "1K Club", "Earn 1,000 XP", 1000, "xp"),
    Achievement("5k-club", "5K Club", "Earn 5,000 XP", 5000, "xp"),
    Achievement("xp-legend", "XP Legend", "Earn 10,000 XP", 10000, "xp"),

    # Streak milestones
    Achievement("week-warrior", "Week Warrior", "7-day streak", 7, "streak"),
    Achievement("streak-master", "Streak Master", "30-day streak", 30, "streak"),

    # Course milestones
    Achievement("course-finisher", "Course Finisher", "Complete 1 course", 1, "course"),
    Achievement("knowledge-seeker", "Knowledge Seeker", "Complete 5 courses", 5, "course"),
]


# ================= PRICING =================

DEFAULT_PLAN_SETTINGS = {
    "basic": {"monthly": 50, "annual": 499},
    "pro": {"monthly": 99, "annual": 929},
}

PLAN_DURATION_DAYS = {"monthly": 30, "annual": 365}

MCQ_CORRECT_POINTS = 50
