"""
Tests for the layout engine
"""

import pytest

from reportpdf.errors import InvalidElementSpec, SerializationError, UnknownStyle
from reportpdf.layout import LayoutState
from reportpdf.models import Cell, Footnote, HtmlFragment, Image, Line, PageHeader, Text, TextBox

HEADER = [Cell(height=20, text="Header", advance="next_line")]


def items_for(page, element, kind=None):
    return [item for item in page.items if item.element is element and (kind is None or item.kind == kind)]


def layout(engine, body, header=HEADER):
    engine.set_header(header)
    engine.start()
    for element in body:
        engine.place(element)
    return engine.finish()


class TestPagination:
    def test_header_height_offsets_body(self, make_engine, geometry):
        engine = make_engine(geometry)
        cell = Cell(width=50, height=10, border="1")
        pages = layout(engine, [cell])
        assert engine.header_height == pytest.approx(20)
        rect = items_for(pages[0], cell, "rect")[0]
        assert (rect.x, rect.y) == pytest.approx((10, 30))

    def test_cell_that_does_not_fit_moves_to_next_page(self, make_engine, geometry):
        engine = make_engine(geometry)
        cells = [Cell(height=100, border="1", text=f"row {n}", advance="next_line") for n in range(9)]
        pages = layout(engine, cells)
        assert len(pages) == 2
        assert all(items_for(pages[0], cell) for cell in cells[:8])
        moved = items_for(pages[1], cells[8], "rect")[0]
        assert (moved.x, moved.y) == pytest.approx((10, 30))
        assert pages[1].body_top == pytest.approx(30)

    def test_page_break_resets_to_right_margin_in_rtl(self, make_engine, rtl_geometry):
        engine = make_engine(rtl_geometry)
        cells = [Cell(width=100, height=500, border="1", advance="next_line") for _ in range(2)]
        pages = layout(engine, cells)
        moved = items_for(pages[1], cells[1], "rect")[0]
        assert (moved.x, moved.y) == pytest.approx((485, 30))

    def test_element_taller_than_page_is_placed_anyway(self, make_engine, geometry):
        engine = make_engine(geometry)
        cell = Cell(height=2000, border="1")
        pages = layout(engine, [cell])
        assert len(pages) == 1
        assert items_for(pages[0], cell, "rect")[0].height == pytest.approx(2000)

    def test_absolute_position_never_breaks(self, make_engine, geometry):
        engine = make_engine(geometry)
        cell = Cell(width=20, height=50, top=820, left=30, border="1")
        pages = layout(engine, [Cell(height=10, advance="next_line"), cell])
        assert len(pages) == 1
        rect = items_for(pages[0], cell, "rect")[0]
        assert (rect.x, rect.y) == pytest.approx((30, 820))

    def test_auto_page_break_off(self, make_engine, geometry):
        engine = make_engine(geometry, auto_page_break=False)
        cells = [Cell(height=300, border="1", advance="next_line") for _ in range(4)]
        pages = layout(engine, cells)
        assert len(pages) == 1

    def test_header_and_footer_margins_offset_the_bands(self, make_engine, geometry):
        geometry = geometry.model_copy(update={"header_margin": 4, "footer_margin": 6})
        header = Cell(height=20, border="1", advance="next_line")
        body = Cell(width=50, height=10, border="1")
        footer = Cell(height=5, border="1")

        engine = make_engine(geometry)
        pages = layout(engine, [body], header=[header])
        engine.apply_footer([footer])
        assert items_for(pages[0], header, "rect")[0].y == pytest.approx(4)
        assert items_for(pages[0], body, "rect")[0].y == pytest.approx(24)
        assert items_for(pages[0], footer, "rect")[0].y == pytest.approx(836)

        engine = make_engine(geometry)
        pages = layout(engine, [body], header=[Cell(height=2, advance="next_line")])
        assert items_for(pages[0], body, "rect")[0].y == pytest.approx(10)

    def test_state_machine(self, make_engine, geometry):
        engine = make_engine(geometry)
        assert engine.state is LayoutState.IDLE
        layout(engine, [Cell(height=10)])
        assert engine.state is LayoutState.DONE
        with pytest.raises(RuntimeError):
            engine.place(Cell())


class TestAdvance:
    def test_same_line(self, make_engine, geometry):
        engine = make_engine(geometry)
        first = Cell(width=100, height=10, border="1")
        second = Cell(width=100, height=30, border="1")
        pages = layout(engine, [first, second], header=[])
        assert items_for(pages[0], second, "rect")[0].x == pytest.approx(110)
        assert engine.cursor.x == pytest.approx(210)
        assert engine.cursor.row_bottom == pytest.approx(40)

    def test_next_line_uses_row_bottom(self, make_engine, geometry):
        engine = make_engine(geometry)
        tall = Cell(width=100, height=30)
        short = Cell(width=100, height=10, advance="next_line")
        layout(engine, [tall, short], header=[])
        assert (engine.cursor.x, engine.cursor.y) == pytest.approx((10, 40))

    def test_reset_height_ignores_taller_siblings(self, make_engine, geometry):
        engine = make_engine(geometry)
        tall = Cell(width=100, height=30)
        short = Cell(width=100, height=10, advance="next_line", reset_height=True)
        layout(engine, [tall, short], header=[])
        assert engine.cursor.y == pytest.approx(20)

    def test_below(self, make_engine, geometry):
        engine = make_engine(geometry)
        layout(engine, [Cell(width=50, height=5), Cell(width=100, height=10, advance="below")], header=[])
        assert (engine.cursor.x, engine.cursor.y) == pytest.approx((60, 20))

    def test_rtl_mirrors_same_line(self, make_engine, rtl_geometry):
        engine = make_engine(rtl_geometry)
        first = Cell(width=100, height=10, border="1")
        second = Cell(width=100, height=10, border="1")
        absolute = Cell(width=50, height=10, left=20, top=400, border="1")
        pages = layout(engine, [first, second, absolute], header=[])
        assert items_for(pages[0], first, "rect")[0].x == pytest.approx(485)
        assert items_for(pages[0], second, "rect")[0].x == pytest.approx(385)
        assert items_for(pages[0], absolute, "rect")[0].x == pytest.approx(525)

    def test_rtl_default_alignment_is_right(self, make_engine, rtl_geometry):
        engine = make_engine(rtl_geometry)
        cell = Cell(width=200, height=20, text="abc")
        pages = layout(engine, [cell], header=[])
        text = items_for(pages[0], cell, "text")[0]
        assert text.x + text.width == pytest.approx(585 - 2)


class TestTextBox:
    def test_split_across_pages(self, make_engine, geometry):
        engine = make_engine(geometry)
        box = TextBox(width=200, height=900, border=True)
        pages = layout(engine, [box])
        assert len(pages) == 2
        first = items_for(pages[0], box, "rect")[0]
        second = items_for(pages[1], box, "rect")[0]
        assert (first.y, first.bottom) == pytest.approx((30, 832))
        assert (second.y, second.height) == pytest.approx((30, 98))

    def test_box_moves_to_next_page_when_it_fits_there(self, make_engine, geometry):
        engine = make_engine(geometry)
        filler = Cell(height=700, advance="next_line")
        box = TextBox(width=200, height=300, border=True)
        pages = layout(engine, [filler, box])
        assert items_for(pages[0], box) == []
        assert items_for(pages[1], box, "rect")[0].y == pytest.approx(30)

    def test_box_overflows_when_header_fills_the_page(self, make_engine, geometry):
        engine = make_engine(geometry)
        box = TextBox(width=100, height=100, padding=False, border=True)
        pages = layout(engine, [box], header=[Cell(height=830, advance="next_line")])
        assert len(pages) == 1
        rect = items_for(pages[0], box, "rect")[0]
        assert (rect.y, rect.height) == pytest.approx((840, 100))

    def test_text_box_lines_overflow_when_header_fills_the_page(self, make_engine, geometry):
        engine = make_engine(geometry)
        box = TextBox(width=100, elements=(Text(content="one two three four five six seven eight"),))
        pages = layout(engine, [box], header=[Cell(height=830, advance="next_line")])
        assert len(pages) == 1
        assert len(items_for(pages[0], box, "text")) > 1

    def test_page_check_off_overflows(self, make_engine, geometry):
        engine = make_engine(geometry)
        filler = Cell(height=700, advance="next_line")
        box = TextBox(width=200, height=300, border=True, page_check=False)
        pages = layout(engine, [filler, box])
        assert len(pages) == 1
        assert items_for(pages[0], box, "rect")[0].bottom == pytest.approx(1030)

    def test_long_text_continues_on_next_page(self, make_engine, geometry):
        engine = make_engine(geometry)
        words = " ".join(f"word{n}" for n in range(1500))
        box = TextBox(width=0, border=True, elements=(Text(content=words),))
        pages = layout(engine, [box])
        assert len(pages) >= 2
        for page in pages:
            for item in items_for(page, box, "text"):
                assert item.x >= 10 - 1e-6
                assert item.x + item.width <= 585 + 1e-6
                assert item.bottom <= 832 + 1e-6

    def test_text_wraps_inside_box(self, make_engine, geometry):
        engine = make_engine(geometry)
        box = TextBox(width=100, elements=(Text(content="one two three four five six seven eight"),))
        pages = layout(engine, [box], header=[])
        lines = items_for(pages[0], box, "text")
        assert len(lines) > 1
        rect_height = sum(line.height for line in lines) + 6
        assert engine.cursor.row_bottom == pytest.approx(10 + rect_height)


class TestFootnotes:
    def test_footnotes_render_on_the_page_that_references_them(self, make_engine, geometry):
        engine = make_engine(geometry)
        body = [
            TextBox(newline=True, elements=(
                Text(content="First"), Footnote(content="note one"),
                Text(content=" second"), Footnote(content="note two"),
            )),
            Cell(height=740, advance="next_line"),
            TextBox(newline=True, elements=(Text(content="Third"), Footnote(content="note three"))),
        ]
        pages = layout(engine, body)
        assert len(pages) == 2
        assert [e.ordinal for e in pages[0].footnotes] == [1, 2]
        assert [e.ordinal for e in pages[1].footnotes] == [3]
        assert pages[1].footnotes[0].page_index == 1

        notes = [item for item in pages[0].items if item.kind == "text" and item.element in pages[0].footnotes]
        assert len(notes) == 2
        assert all(item.bottom <= 832 + 1e-6 for item in notes)

    def test_footnote_outside_the_body_is_rejected(self, make_engine, geometry):
        engine = make_engine(geometry)
        header = [TextBox(newline=True, elements=(Text(content="Title"), Footnote(content="note")))]
        with pytest.raises(InvalidElementSpec):
            engine.set_header(header)
        assert engine.footnotes.next_ordinal == 1

    def test_footnote_in_page_header_is_rejected(self, make_engine, geometry):
        engine = make_engine(geometry)
        engine.start()
        with pytest.raises(InvalidElementSpec):
            engine.place(PageHeader(elements=(TextBox(elements=(Footnote(content="note"),)),)))

    def test_marker_is_superscript_ordinal(self, make_engine, geometry):
        engine = make_engine(geometry)
        box = TextBox(elements=(Text(content="Born"), Footnote(content="Register")))
        pages = layout(engine, [box])
        runs = items_for(pages[0], box, "text")[0].payload["runs"]
        marker = runs[-1]
        assert marker.text == "1"
        assert marker.rise > 0
        assert marker.style.name == "footnotenum"

    def test_repeated_footnote_listed_once(self, make_engine, geometry):
        engine = make_engine(geometry)
        note = Footnote(content="Same source")
        pages = layout(engine, [TextBox(newline=True, elements=(note,)), TextBox(elements=(note,))])
        assert [e.ordinal for e in pages[0].footnotes] == [1]

    def test_document_placement_lists_notes_after_body(self, make_engine, geometry):
        engine = make_engine(geometry, footnote_placement="document")
        body = [TextBox(newline=True, elements=(Text(content="x"), Footnote(content="n"))),
                Cell(height=10, text="last", advance="next_line")]
        pages = layout(engine, body)
        entry = pages[-1].footnotes[0]
        note_line = [item for item in pages[-1].items if item.element is entry][0]
        last_cell = items_for(pages[-1], body[1], "text")[0]
        assert note_line.y >= last_cell.bottom

    def test_top_level_footnote_flows(self, make_engine, geometry):
        engine = make_engine(geometry)
        pages = layout(engine, [Text(content="Hello"), Footnote(content="World")])
        assert [e.content for e in pages[0].footnotes] == ["World"]


class TestFlowAndPrimitives:
    def test_text_flows_from_cursor(self, make_engine, geometry):
        engine = make_engine(geometry)
        lead = Cell(width=300, height=12)
        text = Text(content=" ".join(["lorem"] * 200))
        pages = layout(engine, [lead, text], header=[])
        lines = items_for(pages[0], text, "text")
        assert lines[0].x == pytest.approx(310)
        assert all(line.x == pytest.approx(10) for line in lines[1:])
        assert all(line.x + line.width <= 585 + 1e-6 for line in lines)

    def test_unknown_style_raises(self, make_engine, geometry):
        engine = make_engine(geometry)
        with pytest.raises(UnknownStyle):
            layout(engine, [Cell(style="nope", text="x")])

    def test_page_header_repeats_on_following_pages(self, make_engine, geometry):
        engine = make_engine(geometry)
        page_header = PageHeader(elements=(Cell(height=15, text="Continued", advance="next_line"),))
        body = [page_header] + [Cell(height=200, advance="next_line") for _ in range(5)]
        pages = layout(engine, body)
        assert len(pages) == 2
        assert pages[1].body_top == pytest.approx(45)
        texts = [item.payload["runs"][0].text for item in pages[1].items if item.kind == "text"]
        assert "Continued" in texts

    def test_empty_page_header_stops_repeating(self, make_engine, geometry):
        engine = make_engine(geometry)
        page_header = PageHeader(elements=(Cell(height=15, text="Continued", advance="next_line"),))
        body = [page_header, PageHeader()] + [Cell(height=200, advance="next_line") for _ in range(5)]
        pages = layout(engine, body)
        assert pages[1].body_top == pytest.approx(30)

    def test_footer_is_drawn_on_every_page(self, make_engine, geometry):
        engine = make_engine(geometry)
        layout(engine, [Cell(height=500, advance="next_line") for _ in range(3)])
        footer = Cell(height=8, text="{{PAGE}}", align="center")
        engine.apply_footer([footer])
        for page in engine.pages:
            item = items_for(page, footer, "text")[0]
            assert item.y >= 832

    def test_image_sizes(self, make_engine, geometry, png_path):
        engine = make_engine(geometry)
        natural = Image(source=str(png_path))
        scaled = Image(source=str(png_path), width=40, align="right")
        pages = layout(engine, [natural, scaled], header=[])
        first = items_for(pages[0], natural, "image")[0]
        second = items_for(pages[0], scaled, "image")[0]
        assert (first.width, first.height) == pytest.approx((20, 10))
        assert (second.x, second.y, second.height) == pytest.approx((545, 20, 20))

    def test_unreadable_image(self, make_engine, geometry, temp_dir):
        engine = make_engine(geometry)
        image = Image(source=str(temp_dir / "missing.png"))
        with pytest.raises(SerializationError) as excinfo:
            layout(engine, [image])
        assert excinfo.value.element is image

    def test_line_defaults_to_cursor_and_margin(self, make_engine, geometry):
        engine = make_engine(geometry)
        line = Line()
        pages = layout(engine, [Cell(width=0, height=10, advance="next_line"), line], header=[])
        payload = items_for(pages[0], line, "line")[0].payload
        assert (payload["x1"], payload["y1"], payload["x2"], payload["y2"]) == pytest.approx((10, 20, 585, 20))

    def test_html_fragment_is_atomic_block(self, make_engine, geometry):
        engine = make_engine(geometry)
        fragment = HtmlFragment(tag="p", children=("Some ", HtmlFragment(tag="b", children=("bold",)), " text"))
        pages = layout(engine, [Cell(width=50, height=10), fragment], header=[])
        item = items_for(pages[0], fragment, "html")[0]
        assert (item.x, item.y) == pytest.approx((10, 20))
        assert item.height > 0
        assert "<b>bold</b>" in item.payload["markup"]

    def test_html_rejected_by_paragraph_parser(self, make_engine, geometry):
        engine = make_engine(geometry)
        fragment = HtmlFragment.model_construct(
            type="html", tag="font", attrs={"color": "notacolor"}, children=("x",), style="text"
        )
        with pytest.raises(SerializationError) as excinfo:
            layout(engine, [fragment], header=[])
        assert excinfo.value.element is fragment

    def test_cell_link_and_stretch(self, make_engine, geometry):
        engine = make_engine(geometry)
        cell = Cell(width=30, height=10, text="a rather long label", stretch=1, url="https://example.org")
        pages = layout(engine, [cell], header=[])
        text = items_for(pages[0], cell, "text")[0]
        assert len(items_for(pages[0], cell, "text")) == 1
        assert text.payload["h_scale"] < 100
        assert items_for(pages[0], cell, "link")[0].payload["url"] == "https://example.org"
