def _script(lines: int, mutations: int) -> str:
    """Build a script with exactly `lines` meaningful lines, `mutations` of them inserts."""
    body = [f'body.insertParagraph("p{i}", "End");' for i in range(mutations)]
    body.append("await context.sync();")
    body.append("return { success: true };")
    while len(body) < lines:
        body.insert(0, f"const v{len(body)} = {len(body)};")
    assert len(body) == lines
    return "\n".join(body)


def test_line_count_skips_blank_and_comment_lines():
    from docbridge.services.risk_gate import count_meaningful_lines

    script = "// header\n\n/* block\n * more\n */\nconst a = 1;\n   \nreturn a;\n"
    assert count_meaningful_lines(script) == 2


def test_oversized_script_is_blocked_even_without_mutations():
    from docbridge.services.risk_gate import LEVEL_BLOCK, RiskGate

    gate = RiskGate()
    script = "\n".join(f"const v{i} = {i};" for i in range(90))
    assessment = gate.assess(script)
    assert assessment.level == LEVEL_BLOCK
    assert assessment.metrics.lines == 90
    assert assessment.metrics.mutation_calls == 0


def test_too_many_mutations_is_blocked():
    from docbridge.services.risk_gate import RiskGate

    assessment = RiskGate().assess(_script(85, 20))
    assert assessment.blocked
    assert assessment.metrics.mutation_calls == 20


def test_small_script_is_ok():
    from docbridge.services.risk_gate import LEVEL_OK, RiskGate

    assessment = RiskGate().assess(_script(25, 3))
    assert assessment.level == LEVEL_OK
    assert assessment.issues == []
    assert assessment.matched_rules == []


def test_warn_thresholds():
    from docbridge.services.risk_gate import LEVEL_WARN, RiskGate

    gate = RiskGate()
    assert gate.assess(_script(31, 0)).level == LEVEL_WARN
    assert gate.assess(_script(10, 6)).level == LEVEL_WARN
    # Exactly on the thresholds is still fine.
    assert not gate.assess(_script(30, 5)).warned
    assert not gate.assess(_script(80, 15)).blocked


def test_risky_patterns_warn_and_suggest_alternatives():
    from docbridge.services.risk_gate import RiskGate

    script = "\n".join(
        [
            "context.document.body.clear();",
            'body.insertParagraph("Title", "Start");',
            "para.shading.backgroundPatternColor = '#eee';",
            "await context.sync();",
            "return { success: true };",
        ]
    )
    assessment = RiskGate().assess(script)
    assert assessment.warned
    assert assessment.matched_rules == [
        "body.clear()",
        'insertParagraph(..., "Start")',
        "shading.backgroundPatternColor",
    ]
    assert any("highlightColor" in s for s in assessment.suggestions)
    assert assessment.metrics.has_risky_patterns is True


def test_missing_sync_and_success_marker_are_advisories_only():
    from docbridge.services.risk_gate import LEVEL_OK, RiskGate

    assessment = RiskGate().assess('body.insertParagraph("x", "End");')
    assert assessment.level == LEVEL_OK
    assert "No context.sync() call" in assessment.issues
    assert "No explicit success marker returned" in assessment.issues


def test_block_guidance_lists_metrics_and_split_requirement():
    from docbridge.services.risk_gate import RiskGate

    gate = RiskGate()
    assessment = gate.assess(_script(85, 20))
    text = gate.block_guidance(assessment)
    assert text.startswith("Script blocked")
    assert "- Lines: 85" in text
    assert "- Insert operations: 20" in text
    assert "Stay within 30 lines." in text
    assert "return { success: true" in text


def test_custom_mutation_verbs_and_thresholds():
    from docbridge.services.risk_gate import GateThresholds, RiskGate

    gate = RiskGate(GateThresholds(warn_lines=2, warn_mutations=1, block_lines=4, block_mutations=2), mutation_verbs=("insert", "delete"))
    metrics = gate.measure("a.deleteRows(1);\nb.insertText('x');\nc.deleteColumn(2);")
    assert metrics.mutation_calls == 3
    assert gate.assess("a.deleteRows(1);\nb.insertText('x');\nc.deleteColumn(2);").blocked
