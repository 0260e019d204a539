#!/usr/bin/env python3
"""
Generate a synthetic French medical course PDF for a pipeline smoke run.

The text is written so every stage has something to find: numbered
chapters and uppercase section headings for extraction, enough medical
vocabulary for validation to pass, and terms such as "syndrome" and
"classification" that raise the difficulty score.

Usage:
    python scripts/generate_sample_pdf.py
    python scripts/process_local.py data/samples/cours_insuffisance_cardiaque.pdf

Output:
    data/samples/cours_insuffisance_cardiaque.pdf
"""

from pathlib import Path

from fpdf import FPDF

CHAPTERS = [
    (
        "CHAPITRE 1 - Définition et épidémiologie",
        "L'insuffisance cardiaque est un syndrome clinique dans lequel le coeur "
        "ne peut plus assurer un débit adapté aux besoins de l'organisme. Elle "
        "touche environ deux pour cent de la population adulte et plus de dix "
        "pour cent des patients de plus de soixante-dix ans. La maladie est la "
        "première cause d'hospitalisation après soixante-cinq ans.",
    ),
    (
        "CHAPITRE 2 - Physiopathologie",
        "La physiopathologie associe une altération de la fonction systolique ou "
        "diastolique à une activation neuro-hormonale. Le système "
        "rénine-angiotensine-aldostérone et le système sympathique entretiennent "
        "la rétention hydrosodée et le remodelage ventriculaire. L'étiologie la "
        "plus fréquente reste la cardiopathie ischémique, suivie de "
        "l'hypertension artérielle et des valvulopathies.",
    ),
    (
        "CHAPITRE 3 - Diagnostic clinique et paraclinique",
        "Le diagnostic repose sur l'association de symptômes (dyspnée d'effort, "
        "orthopnée, asthénie) et de signes cliniques (oedèmes des membres "
        "inférieurs, turgescence jugulaire, crépitants pulmonaires). Le dosage "
        "du BNP ou du NT-proBNP et l'échocardiographie confirment le diagnostic "
        "et précisent la fraction d'éjection. La classification NYHA décrit la "
        "sévérité fonctionnelle en quatre stades.",
    ),
    (
        "CHAPITRE 4 - Traitement",
        "Le traitement de l'insuffisance cardiaque à fraction d'éjection réduite "
        "associe un inhibiteur de l'enzyme de conversion ou un sacubitril-"
        "valsartan, un bêtabloquant, un antagoniste des récepteurs "
        "minéralocorticoïdes et un inhibiteur de SGLT2. Les diurétiques de l'anse "
        "soulagent la congestion. La prise en charge thérapeutique inclut "
        "l'éducation du patient et la réadaptation cardiaque.",
    ),
    (
        "CHAPITRE 5 - Pronostic et suivi",
        "Le pronostic dépend de la fraction d'éjection, de l'âge et des "
        "comorbidités. Le suivi clinique régulier permet d'adapter les doses et "
        "de dépister une décompensation. La pathologie reste grave : la "
        "mortalité à cinq ans approche cinquante pour cent.",
    ),
]


class CoursePdf(FPDF):
    """A4 course handout with a running header and page numbers."""

    def header(self):
        self.set_font("Helvetica", "I", 9)
        self.set_text_color(110, 110, 110)
        self.cell(0, 8, "Faculté de médecine - Cardiologie - Support de cours", 0, 1, "C")
        self.ln(2)

    def footer(self):
        self.set_y(-15)
        self.set_font("Helvetica", "I", 8)
        self.set_text_color(150, 150, 150)
        self.cell(0, 10, f"Page {self.page_no()}/{{nb}} | Données fictives", 0, 0, "C")

    def chapter(self, title: str, body: str):
        self.set_font("Helvetica", "B", 13)
        self.set_text_color(0, 0, 0)
        self.ln(4)
        self.cell(0, 10, title, 0, 1)
        self.set_font("Helvetica", "", 10.5)
        self.set_text_color(30, 30, 30)
        self.multi_cell(0, 5.5, body)
        self.ln(2)


def generate_course() -> Path:
    pdf = CoursePdf()
    pdf.alias_nb_pages()
    pdf.set_auto_page_break(auto=True, margin=20)

    pdf.add_page()
    pdf.set_font("Helvetica", "B", 20)
    pdf.ln(10)
    pdf.cell(0, 12, "L'insuffisance cardiaque chronique", 0, 1, "C")
    pdf.set_font("Helvetica", "", 11)
    pdf.cell(0, 8, "Cours de cardiologie pour les étudiants en médecine", 0, 1, "C")
    pdf.ln(6)

    for index, (title, body) in enumerate(CHAPTERS):
        if index == 3:
            pdf.add_page()
        pdf.chapter(title, body)

    output = Path("data/samples/cours_insuffisance_cardiaque.pdf")
    output.parent.mkdir(parents=True, exist_ok=True)
    pdf.output(str(output))
    return output


if __name__ == "__main__":
    path = generate_course()
    print(f"Generated: {path}")
