"""
Concept catalogue: one practice item per concept index.

The agent's action is a concept index; the catalogue turns it into a prompt
for the learner and, via the practice database, the expected result set the
learner's query is graded against.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.core.exceptions import ConfigurationError, InvalidActionError
from src.practice.query_runner import PracticeDatabase


@dataclass(frozen=True)
class PracticeItem:
    """A single SQL exercise for one concept."""

    concept: str
    prompt: str
    reference_query: str

    def to_dict(self) -> dict[str, str]:
        return {"concept": self.concept, "prompt": self.prompt}


DEFAULT_ITEMS: tuple[PracticeItem, ...] = (
    PracticeItem(
        concept="SELECT columns",
        prompt="List the name and location of every department.",
        reference_query="SELECT name, location FROM departments",
    ),
    PracticeItem(
        concept="WHERE filter",
        prompt="List the names of employees earning more than 5000.",
        reference_query="SELECT name FROM employees WHERE salary > 5000",
    ),
    PracticeItem(
        concept="ORDER BY / LIMIT",
        prompt="Show the names of the three most recently hired employees.",
        reference_query="SELECT name FROM employees ORDER BY hire_year DESC LIMIT 3",
    ),
    PracticeItem(
        concept="Aggregate functions",
        prompt="How many employees are there, and what is their average salary?",
        reference_query="SELECT COUNT(*), AVG(salary) FROM employees",
    ),
    PracticeItem(
        concept="GROUP BY",
        prompt="For each department id, count its employees (ignore employees without a department).",
        reference_query=(
            "SELECT department_id, COUNT(*) FROM employees "
            "WHERE department_id IS NOT NULL GROUP BY department_id"
        ),
    ),
    PracticeItem(
        concept="HAVING",
        prompt="Which department ids have more than two employees?",
        reference_query=(
            "SELECT department_id FROM employees WHERE department_id IS NOT NULL "
            "GROUP BY department_id HAVING COUNT(*) > 2"
        ),
    ),
    PracticeItem(
        concept="INNER JOIN",
        prompt="List each employee's name with the name of their department.",
        reference_query=(
            "SELECT e.name, d.name FROM employees e "
            "JOIN departments d ON e.department_id = d.id"
        ),
    ),
    PracticeItem(
        concept="LEFT JOIN",
        prompt="List every department name with the number of projects it runs (including zero).",
        reference_query=(
            "SELECT d.name, COUNT(p.id) FROM departments d "
            "LEFT JOIN projects p ON p.department_id = d.id GROUP BY d.id, d.name"
        ),
    ),
    PracticeItem(
        concept="Subqueries",
        prompt="List the names of employees earning more than the average salary.",
        reference_query=(
            "SELECT name FROM employees WHERE salary > (SELECT AVG(salary) FROM employees)"
        ),
    ),
    PracticeItem(
        concept="Self join",
        prompt="List each employee who has a manager together with the manager's name.",
        reference_query=(
            "SELECT e.name, m.name FROM employees e JOIN employees m ON e.manager_id = m.id"
        ),
    ),
)


class ConceptCatalog:
    """Maps concept indices to practice items and their expected results."""

    def __init__(self, items: tuple[PracticeItem, ...] | list[PracticeItem] = DEFAULT_ITEMS):
        if not items:
            raise ConfigurationError("Concept catalogue must contain at least one item")
        self.items = tuple(items)

    def __len__(self) -> int:
        return len(self.items)

    @property
    def concepts(self) -> list[str]:
        return [item.concept for item in self.items]

    def check_size(self, num_concepts: int) -> None:
        """Raise ConfigurationError unless the catalogue covers exactly num_concepts."""
        if num_concepts != len(self.items):
            raise ConfigurationError(
                f"Catalogue has {len(self.items)} concepts but the session uses {num_concepts}"
            )

    def item(self, action: int) -> PracticeItem:
        if isinstance(action, bool) or not isinstance(action, int) or not 0 <= action < len(self.items):
            raise InvalidActionError(action, len(self.items))
        return self.items[action]

    def expected_rows(self, action: int, database: PracticeDatabase) -> list[tuple[str, ...]]:
        """Result set of the reference query for concept `action`."""
        item = self.item(action)
        result = database.run_query(item.reference_query)
        if not result.ok:
            raise ConfigurationError(f"Reference query for {item.concept!r} failed: {result.error}")
        return result.rows
