DESIGN_PROMPT_HEADER = (
    "Please redesign the product(s) shown in the image(s). If multiple images are "
    "provided, treat them as different views of the same product or a cohesive "
    "product line."
)

DESIGN_PROMPT_FOOTER = (
    "Maintain the original product shape, proportions, and background as much as "
    "possible. Return the redesigned product image, followed by a short explanation "
    "(2-3 sentences) of how the chosen color, material and finish work together."
)


BLUEPRINT_PROMPT_HEADER = (
    "Convert this blueprint/technical drawing into a realistic 3D rendered CMF design. "
    "Remove any pencil marks, sketch lines, or drawing artifacts. Create a clean, "
    "professional 3D product visualization with photorealistic materials and lighting. "
    "Apply the specified materials and colors to create a high-quality product "
    "rendering that looks like a finished consumer product."
)

BLUEPRINT_PROMPT_FOOTER = (
    "Keep the proportions and structure shown in the drawing, and render the product "
    "on a clean studio background. Return the rendered product image, followed by a "
    "short explanation (2-3 sentences) of how the chosen color, material and finish "
    "work together."
)


def build_design_instruction(pairs, finish=None, description=None, blueprint=False, reasoning=None) -> str:
    """소재/색상 조합과 선택 항목으로 이미지 생성 지시문을 만든다.

    blueprint=True 이면 설계도/스케치를 완성 제품 렌더링으로 바꾸는 지시문이 되고,
    AI 추천 근거(reasoning)가 있으면 함께 전달한다.
    """
    lines = [BLUEPRINT_PROMPT_HEADER if blueprint else DESIGN_PROMPT_HEADER]
    if len(pairs) == 1:
        material, color = pairs[0]
        lines.append(f"Apply a '{material}' material.")
        lines.append(f"Change its primary color to the hex code '{color}'.")
    else:
        lines.append(
            "Apply the following material and color combinations to the main parts "
            "of the product, in order of visual prominence:"
        )
        for i, (material, color) in enumerate(pairs, start=1):
            lines.append(f"{i}. '{material}' material in the hex color '{color}'")
    if finish:
        lines.append(f"Use a '{finish}' surface finish.")
    if description:
        lines.append(f"Additional request: {description}")
    if blueprint and reasoning:
        lines.append(f"[AI 추천 근거] {reasoning}")
    lines.append(BLUEPRINT_PROMPT_FOOTER if blueprint else DESIGN_PROMPT_FOOTER)
    return "\n".join(lines)


ADVISOR_SYSTEM_PROMPT = """당신은 2024-2025 최신 트렌드를 반영하는 CMF(Color, Material, Finish) 디자인 전문가입니다.

## 추천 기준
1. 2024-2025 디자인 트렌드 반영
2. 제품의 용도와 타겟 사용자에 최적화
3. 색상은 HEX 코드로 제공 (#RRGGBB 형식)
4. 실용성과 심미성의 균형

## 출력: 아래 JSON만 출력하세요. 다른 텍스트 금지.

```json
{
  "material": "추천 소재명 (주어진 옵션 중 정확히 일치)",
  "color": "#RRGGBB",
  "finish": "추천 마감명 (주어진 옵션 중 정확히 일치)",
  "description": "디자인 방향 한 문장",
  "reasoning": "추천 이유 (2-3문장, 트렌드와 제품 특성 언급)"
}
```"""


def build_advisor_prompt(product_name, purpose, materials, finishes) -> str:
    return (
        "제품 정보:\n"
        f"- 제품명: {product_name}\n"
        f"- 타겟/목적: {purpose}\n\n"
        f"사용 가능한 소재 옵션: {', '.join(materials)}\n"
        f"사용 가능한 마감 옵션: {', '.join(finishes)}\n\n"
        "위 제품에 가장 어울리는 CMF를 JSON으로 추천해주세요."
    )
